from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from node_health_agent.core.config import AgentConfig
from node_health_agent.core.log_tail import LogTailEngine
from node_health_agent.core.services import CommandResult, ServiceHealthChecker
from node_health_agent.core.state_store import JsonStateStore
from node_health_agent.core.websites import WebsiteHealthChecker
from node_health_agent.tools.diagnostics import (
    check_services_impl,
    check_websites_impl,
    log_sources_impl,
    tail_state_impl,
)


class AlwaysActive:
    async def run(self, argv):
        return CommandResult(returncode=0, output="")


def _config(tmp_path: Path, **kw) -> AgentConfig:
    return AgentConfig(state_dir=tmp_path / "state", **kw)


@pytest.mark.asyncio
async def test_check_services_impl(tmp_path: Path) -> None:
    cfg = _config(tmp_path, services=["nginx", {"name": "db", "unit": "postgresql"}])

    out = await check_services_impl(cfg, checker=ServiceHealthChecker(AlwaysActive()))

    assert out["count"] == 2
    assert out["records"][1] == {
        "type": "SERVICE_FAILED:postgresql",
        "description": "Service postgresql is active",
        "solved": True,
    }


@pytest.mark.asyncio
async def test_check_websites_impl(tmp_path: Path) -> None:
    cfg = _config(tmp_path, websites=[{"name": "blog", "host": "blog.example", "protocol": "http"}])
    checker = WebsiteHealthChecker(transport=httpx.MockTransport(lambda r: httpx.Response(204)))

    out = await check_websites_impl(cfg, checker=checker)

    assert out["count"] == 1
    assert out["records"][0]["solved"] is True


@pytest.mark.asyncio
async def test_log_sources_and_tail_state(tmp_path: Path) -> None:
    logs = tmp_path / "logs"
    logs.mkdir()
    (logs / "a.log").write_text("ERROR x\n", encoding="utf-8")
    cfg = _config(tmp_path, logs=[{"name": "app", "path": str(logs / "*.log")}])

    before = log_sources_impl(cfg)
    assert before["sources"][0]["files"][0]["state"] == {"identity": None, "offset": 0}

    await LogTailEngine().scan(cfg.log_sources(), JsonStateStore(cfg.state_dir))

    after = log_sources_impl(cfg)
    assert after["sources"][0]["files"][0]["state"]["offset"] == len("ERROR x\n")
    assert after["sources"][0]["files"][0]["logical_name"] == "app:a.log"
    assert tail_state_impl(cfg)["app_a_log"]["offset"] == len("ERROR x\n")
