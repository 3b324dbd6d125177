"""Core data models for the health agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

DEFAULT_LOG_REGEX = r"ERROR|FATAL|PANIC|WARNING"
DEFAULT_TAIL_LINES = 20


@dataclass(frozen=True, slots=True)
class LogSource:
    """A named glob of log files scanned for a pattern."""

    name: str
    path_pattern: str
    regex: str = DEFAULT_LOG_REGEX
    tail_lines: int = DEFAULT_TAIL_LINES


@dataclass(frozen=True, slots=True)
class FileIdentity:
    """Stable (device, inode) pair used to detect rotation."""

    dev: int
    ino: int


@dataclass(frozen=True, slots=True)
class LogFileState:
    """Persisted read position for one resolved log file."""

    identity: FileIdentity | None = None
    offset: int = 0


@dataclass(frozen=True, slots=True)
class ServiceDef:
    name: str
    unit: str


@dataclass(frozen=True, slots=True)
class SslThresholds:
    """Day counts for certificate expiry tiers (most severe first)."""

    critical: int = 7
    warning: int = 14
    notice: int = 30

    def tiers(self) -> tuple[tuple[str, int], ...]:
        return (
            ("critical", self.critical),
            ("warning", self.warning),
            ("notice", self.notice),
        )


@dataclass(frozen=True, slots=True)
class WebsiteDef:
    name: str
    host: str
    protocol: Literal["http", "https"] = "https"
    port: int | None = None
    path: str = "/"
    response_threshold_ms: int | None = None
    ssl_thresholds: SslThresholds | None = None

    @property
    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return 443 if self.protocol == "https" else 80

    @property
    def url(self) -> str:
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{self.protocol}://{self.host}:{self.effective_port}{path}"


@dataclass(frozen=True, slots=True)
class AlertRecord:
    """One upsert against the remote alert endpoint.

    ``type`` is the reconciliation key; ``solved=True`` closes any open alert
    with the same key on the collector side.
    """

    type: str
    description: str
    solved: bool


@dataclass(frozen=True, slots=True)
class TransportResult:
    """Outcome of a JSON POST (status + parsed body, or an error)."""

    code: int | None = None
    body: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.code is not None and 200 <= self.code < 300


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    """Records produced by one checker, or the error that stopped it."""

    checker: str
    records: list[AlertRecord] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True, slots=True)
class CycleReport:
    """Everything one heartbeat cycle did."""

    heartbeat: TransportResult
    node_id: str | int | None
    outcomes: list[CheckOutcome] = field(default_factory=list)
    dispatched: list[TransportResult] = field(default_factory=list)

    @property
    def records(self) -> list[AlertRecord]:
        return [r for o in self.outcomes for r in o.records]
