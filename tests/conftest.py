from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from node_health_agent.core.models import LogFileState, TransportResult


class FakeTransport:
    """Records every POST and answers from a queue (or a default result)."""

    def __init__(self, responses=None, default=None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self._responses = list(responses or [])
        self._default = default or TransportResult(code=200, body={})

    async def post_json(self, url: str, payload: dict) -> TransportResult:
        self.calls.append((url, payload))
        if self._responses:
            return self._responses.pop(0)
        return self._default


class MemoryStateStore:
    def __init__(self) -> None:
        self.states: dict[str, LogFileState] = {}
        self.saves: list[str] = []

    def load(self, logical_name: str) -> LogFileState:
        return self.states.get(logical_name, LogFileState())

    def save(self, logical_name: str, state: LogFileState) -> None:
        self.saves.append(logical_name)
        self.states[logical_name] = state

    def entries_for(self, source_name: str) -> dict[str, LogFileState]:
        prefix = f"{source_name}:"
        return {k: v for k, v in self.states.items() if k.startswith(prefix)}

    def forget(self, logical_name: str) -> None:
        self.states.pop(logical_name, None)


@pytest.fixture
def fake_transport() -> type[FakeTransport]:
    return FakeTransport


@pytest.fixture
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def append_text() -> Callable[[Path, str], None]:
    def _append(path: Path, text: str) -> None:
        with path.open("a", encoding="utf-8") as f:
            f.write(text)

    return _append
