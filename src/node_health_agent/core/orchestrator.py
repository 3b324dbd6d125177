"""One heartbeat cycle.

    GatherMetrics -> PushHeartbeat -> (node id?) -> ServiceCheck -> LogCheck
    -> WebsiteCheck -> DispatchAlerts

Without a node id the checks are skipped entirely. Each checker runs behind
its own boundary and reports failure through :class:`CheckOutcome`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from .alerts import AlertReconciler
from .config import AgentConfig
from .heartbeat import build_heartbeat_payload, extract_node_id
from .log_tail import LogTailEngine
from .metrics import MetricsProvider, MetricsSnapshot, PsutilMetrics, gather_metrics
from .models import AlertRecord, CheckOutcome, CycleReport
from .services import ServiceHealthChecker, SubprocessProbe
from .state_store import JsonStateStore, StateStore
from .transport import HttpTransport, Transport
from .websites import WebsiteHealthChecker

logger = logging.getLogger(__name__)


async def run_checker(
    name: str, check: Callable[[], Awaitable[list[AlertRecord]]]
) -> CheckOutcome:
    """Run one checker; an exception becomes an outcome error instead of propagating."""
    try:
        records = await check()
    except Exception as exc:
        logger.exception("Checker %s failed", name)
        return CheckOutcome(checker=name, error=f"{type(exc).__name__}: {exc}")
    logger.debug("Checker %s produced %d record(s)", name, len(records))
    return CheckOutcome(checker=name, records=records)


class HeartbeatOrchestrator:
    def __init__(
        self,
        config: AgentConfig,
        *,
        metrics: MetricsProvider | None = None,
        transport: Transport | None = None,
        state_store: StateStore | None = None,
        services: ServiceHealthChecker | None = None,
        logs: LogTailEngine | None = None,
        websites: WebsiteHealthChecker | None = None,
        now: Callable[[], datetime] = lambda: datetime.now().astimezone(),
    ) -> None:
        self.config = config
        self.metrics = metrics or PsutilMetrics()
        self.transport = transport or HttpTransport(timeout=config.request_timeout)
        self.state_store = state_store or JsonStateStore(config.state_dir)
        self.services = services or ServiceHealthChecker(
            SubprocessProbe(timeout=config.command_timeout)
        )
        self.logs = logs or LogTailEngine()
        self.websites = websites or WebsiteHealthChecker(timeout=config.website_timeout)
        self.reconciler = AlertReconciler(
            transport=self.transport, url=config.alert_url, api_key=config.api_key
        )
        self._now = now

    async def collect_metrics(self) -> MetricsSnapshot:
        try:
            return await gather_metrics(
                self.metrics,
                mount=self.config.disk_mount,
                cpu_interval=self.config.cpu_sample_interval,
            )
        except Exception:
            logger.exception("Metric sampling failed; sending empty metrics")
            return MetricsSnapshot()

    async def run_checks(self) -> list[CheckOutcome]:
        cfg = self.config
        return [
            await run_checker("services", lambda: self.services.check(cfg.service_defs())),
            await run_checker("logs", lambda: self.logs.scan(cfg.log_sources(), self.state_store)),
            await run_checker(
                "websites",
                lambda: self.websites.check(cfg.website_defs(), cfg.global_ssl_thresholds()),
            ),
        ]

    async def run_cycle(self) -> CycleReport:
        metrics = await self.collect_metrics()
        payload = build_heartbeat_payload(self.config, metrics, self._now())

        logger.info("Pushing heartbeat to %s", self.config.node_url)
        heartbeat = await self.transport.post_json(self.config.node_url, payload)
        node_id = extract_node_id(heartbeat.body) if heartbeat.error is None else None
        if node_id is None:
            logger.warning(
                "No node id in heartbeat response (code=%s, error=%s); skipping checks",
                heartbeat.code,
                heartbeat.error,
            )
            return CycleReport(heartbeat=heartbeat, node_id=None)

        outcomes = await self.run_checks()
        records = [r for o in outcomes for r in o.records]
        dispatched = await self.reconciler.dispatch(node_id, records)

        failed = sum(1 for r in dispatched if not r.ok)
        logger.info(
            "Cycle done for node %s: %d alert(s) sent, %d rejected, %d checker error(s)",
            node_id,
            len(dispatched),
            failed,
            sum(1 for o in outcomes if o.error),
        )
        return CycleReport(
            heartbeat=heartbeat, node_id=node_id, outcomes=outcomes, dispatched=dispatched
        )
