from __future__ import annotations

from pathlib import Path

import pytest

from node_health_agent.cli import run_loop
from node_health_agent.core.config import AgentConfig
from node_health_agent.core.models import AlertRecord, TransportResult
from node_health_agent.core.orchestrator import HeartbeatOrchestrator


class ZeroMetrics:
    def total_ram_gb(self) -> float:
        return 1.0

    def current_ram_usage_percent(self) -> float:
        return 1.0

    def current_cpu_usage_percent(self, sample_interval: float = 0.2) -> float:
        return 1.0

    def total_disk_gb(self, mount: str = "/") -> int:
        return 1

    def current_disk_usage_percent(self, mount: str = "/") -> float:
        return 1.0


class BrokenMetrics(ZeroMetrics):
    def total_ram_gb(self) -> float:
        raise OSError("no /proc")


class StubChecker:
    def __init__(self, name: str, order: list[str], *, fail: bool = False) -> None:
        self.name = name
        self.order = order
        self.fail = fail

    async def _run(self) -> list[AlertRecord]:
        self.order.append(self.name)
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return [AlertRecord(type=f"{self.name}-type", description=self.name, solved=True)]

    async def check(self, defs, *args):
        return await self._run()

    async def scan(self, sources, store):
        return await self._run()


def _orchestrator(tmp_path: Path, transport, order: list[str], *, failing: str = "", metrics=None):
    cfg = AgentConfig(
        saas_url="http://saas", saas_port=3000, api_key="k", state_dir=tmp_path / "state"
    )
    return HeartbeatOrchestrator(
        cfg,
        metrics=metrics or ZeroMetrics(),
        transport=transport,
        services=StubChecker("services", order, fail=failing == "services"),
        logs=StubChecker("logs", order, fail=failing == "logs"),
        websites=StubChecker("websites", order, fail=failing == "websites"),
    )


@pytest.mark.asyncio
async def test_cycle_runs_checks_in_order_and_dispatches(tmp_path: Path, fake_transport) -> None:
    transport = fake_transport(responses=[TransportResult(code=200, body={"id_node": 9})])
    order: list[str] = []

    report = await _orchestrator(tmp_path, transport, order).run_cycle()

    assert report.node_id == 9
    assert order == ["services", "logs", "websites"]
    assert transport.calls[0][0] == "http://saas:3000/api2.0/node/track.json"
    upserts = [payload for url, payload in transport.calls[1:]]
    assert [p["type"] for p in upserts] == ["services-type", "logs-type", "websites-type"]
    assert all(p["id_node"] == 9 for p in upserts)
    assert len(report.dispatched) == 3


@pytest.mark.asyncio
async def test_missing_node_id_skips_everything(tmp_path: Path, fake_transport) -> None:
    transport = fake_transport(responses=[TransportResult(code=200, body={"status": "ok"})])
    order: list[str] = []

    report = await _orchestrator(tmp_path, transport, order).run_cycle()

    assert report.node_id is None
    assert order == []
    assert len(transport.calls) == 1
    assert report.records == [] and report.dispatched == []


@pytest.mark.asyncio
async def test_heartbeat_failure_skips_everything(tmp_path: Path, fake_transport) -> None:
    transport = fake_transport(responses=[TransportResult(error="connection refused")])
    order: list[str] = []

    report = await _orchestrator(tmp_path, transport, order).run_cycle()

    assert report.node_id is None
    assert order == []


@pytest.mark.asyncio
async def test_failing_checker_is_isolated(tmp_path: Path, fake_transport) -> None:
    transport = fake_transport(responses=[TransportResult(code=200, body={"id": "n"})])
    order: list[str] = []

    report = await _orchestrator(tmp_path, transport, order, failing="logs").run_cycle()

    assert order == ["services", "logs", "websites"]
    by_name = {o.checker: o for o in report.outcomes}
    assert by_name["logs"].error == "RuntimeError: logs exploded"
    assert by_name["services"].error is None and by_name["websites"].error is None
    assert [r.type for r in report.records] == ["services-type", "websites-type"]
    assert len(transport.calls) == 3


@pytest.mark.asyncio
async def test_metric_failure_still_sends_heartbeat(tmp_path: Path, fake_transport) -> None:
    transport = fake_transport(responses=[TransportResult(code=200, body={})])

    await _orchestrator(tmp_path, transport, [], metrics=BrokenMetrics()).run_cycle()

    payload = transport.calls[0][1]
    assert payload["total_ram_gb"] == 0.0
    assert payload["current_cpu_usage"] == 0.0


@pytest.mark.asyncio
async def test_real_checkers_with_log_source(tmp_path: Path, fake_transport) -> None:
    log = tmp_path / "app.log"
    log.write_text("ERROR disk full\n", encoding="utf-8")
    cfg = AgentConfig(
        api_key="k",
        state_dir=tmp_path / "state",
        logs=[{"name": "app", "path": str(tmp_path / "*.log")}],
    )
    transport = fake_transport(
        responses=[TransportResult(code=200, body={"id_node": 1})],
        default=TransportResult(code=200, body={}),
    )

    orchestrator = HeartbeatOrchestrator(cfg, metrics=ZeroMetrics(), transport=transport)
    report = await orchestrator.run_cycle()

    types = [p["type"] for _, p in transport.calls[1:]]
    assert types == ["LOG_ISSUE:app", "LOG_ISSUE:app:app.log", "LOG_ISSUE:app:app.log"]
    assert transport.calls[-1][1]["description"] == "ERROR disk full"
    assert all(o.error is None for o in report.outcomes)


@pytest.mark.asyncio
async def test_run_loop_single_shot(tmp_path: Path, fake_transport) -> None:
    transport = fake_transport(responses=[TransportResult(code=200, body={"id_node": 2})])
    order: list[str] = []

    await run_loop(_orchestrator(tmp_path, transport, order), delay=1, run_once=True)

    assert order == ["services", "logs", "websites"]
