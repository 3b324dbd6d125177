"""MCP tool implementations for operator diagnostics.

Keep this layer thin: translate the agent config into core calls and return
JSON-serializable data. Nothing here pushes heartbeats or dispatches alerts,
and nothing here advances persisted log offsets.
"""

from __future__ import annotations

from typing import Any

from node_health_agent.core.config import AgentConfig
from node_health_agent.core.log_tail import logical_name, resolve_paths
from node_health_agent.core.models import AlertRecord, LogFileState
from node_health_agent.core.services import ServiceHealthChecker, SubprocessProbe
from node_health_agent.core.state_store import JsonStateStore
from node_health_agent.core.websites import WebsiteHealthChecker


def _record_to_dict(record: AlertRecord) -> dict[str, Any]:
    return {"type": record.type, "description": record.description, "solved": record.solved}


def _state_to_dict(state: LogFileState) -> dict[str, Any]:
    identity = None
    if state.identity is not None:
        identity = {"dev": state.identity.dev, "ino": state.identity.ino}
    return {"identity": identity, "offset": state.offset}


async def check_services_impl(
    config: AgentConfig, *, checker: ServiceHealthChecker | None = None
) -> dict[str, Any]:
    """Evaluate configured services without dispatching alerts."""
    checker = checker or ServiceHealthChecker(SubprocessProbe(timeout=config.command_timeout))
    records = await checker.check(config.service_defs())
    return {"count": len(records), "records": [_record_to_dict(r) for r in records]}


async def check_websites_impl(
    config: AgentConfig, *, checker: WebsiteHealthChecker | None = None
) -> dict[str, Any]:
    """Evaluate configured websites without dispatching alerts."""
    checker = checker or WebsiteHealthChecker(timeout=config.website_timeout)
    records = await checker.check(config.website_defs(), config.global_ssl_thresholds())
    return {"count": len(records), "records": [_record_to_dict(r) for r in records]}


def log_sources_impl(config: AgentConfig) -> dict[str, Any]:
    """Resolve every log source to its files and show the stored tail position."""
    store = JsonStateStore(config.state_dir)
    sources: list[dict[str, Any]] = []
    for source in config.log_sources():
        files = []
        for path in resolve_paths(source.path_pattern):
            name = logical_name(source, path)
            files.append(
                {
                    "path": str(path),
                    "logical_name": name,
                    "state": _state_to_dict(store.load(name)),
                }
            )
        sources.append(
            {
                "name": source.name,
                "path_pattern": source.path_pattern,
                "regex": source.regex,
                "tail_lines": source.tail_lines,
                "files": files,
            }
        )
    return {"count": len(sources), "sources": sources}


def tail_state_impl(config: AgentConfig) -> dict[str, Any]:
    """Return every persisted tail state keyed by state-file stem."""
    store = JsonStateStore(config.state_dir)
    return {stem: _state_to_dict(state) for stem, state in store.entries().items()}
