"""systemd unit liveness checks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from .models import AlertRecord, ServiceDef

logger = logging.getLogger(__name__)

SERVICE_ALERT_PREFIX = "SERVICE_FAILED"
STATUS_LINES = 5
JOURNAL_LINES = 10


@dataclass(frozen=True, slots=True)
class CommandResult:
    returncode: int | None
    output: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.returncode == 0


class UnitProbe(Protocol):
    """Runs a diagnostic command and captures its combined output."""

    async def run(self, argv: Sequence[str]) -> CommandResult:
        ...


class SubprocessProbe:
    """Run commands with asyncio subprocesses, killing them on timeout."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def run(self, argv: Sequence[str]) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            return CommandResult(returncode=None, output="", error=str(exc))

        try:
            out, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return CommandResult(
                returncode=None,
                output="",
                error=f"{argv[0]} timed out after {self.timeout}s",
            )
        return CommandResult(
            returncode=proc.returncode,
            output=out.decode("utf-8", errors="replace"),
        )


def alert_type(unit: str) -> str:
    return f"{SERVICE_ALERT_PREFIX}:{unit}"


def _head(text: str, n: int) -> str:
    return "\n".join(text.splitlines()[:n])


def _tail(text: str, n: int) -> str:
    return "\n".join(text.splitlines()[-n:])


class ServiceHealthChecker:
    """Report each unit as solved when active, else attach status and journal snippets."""

    def __init__(self, probe: UnitProbe | None = None) -> None:
        self.probe = probe or SubprocessProbe()

    async def is_active(self, unit: str) -> bool:
        result = await self.probe.run(["systemctl", "is-active", "--quiet", unit])
        if result.error is not None:
            logger.warning("Cannot query unit %s: %s", unit, result.error)
        return result.ok

    async def diagnostics(self, unit: str) -> str:
        status = await self.probe.run(["systemctl", "status", "--no-pager", unit])
        journal = await self.probe.run(
            ["journalctl", "-u", unit, "-n", str(JOURNAL_LINES), "--no-pager"]
        )
        status_text = status.error or _head(status.output, STATUS_LINES)
        journal_text = journal.error or _tail(journal.output, JOURNAL_LINES)
        return (
            f"Service {unit} is not active.\n"
            f"--- status ---\n{status_text}\n"
            f"--- recent logs ---\n{journal_text}"
        )

    async def check_one(self, service: ServiceDef) -> AlertRecord:
        if await self.is_active(service.unit):
            logger.debug("Service %s (%s) is active", service.name, service.unit)
            return AlertRecord(
                type=alert_type(service.unit),
                description=f"Service {service.unit} is active",
                solved=True,
            )

        logger.warning("Service %s (%s) is not active", service.name, service.unit)
        return AlertRecord(
            type=alert_type(service.unit),
            description=await self.diagnostics(service.unit),
            solved=False,
        )

    async def check(self, defs: Sequence[ServiceDef]) -> list[AlertRecord]:
        return [await self.check_one(d) for d in defs]
