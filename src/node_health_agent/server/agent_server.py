"""MCP diagnostics server (stdio transport).

Exposes read-only operator tools over the agent's configuration:
- Tools: run service and website checks without dispatching alerts,
  resolve log sources to their files
- Resources: persisted log tail state, effective configuration summary

Run locally (stdio):
    python -m node_health_agent.server.agent_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from node_health_agent.core.config import AgentConfig, load_config
from node_health_agent.tools.diagnostics import (
    check_services_impl,
    check_websites_impl,
    log_sources_impl,
    tail_state_impl,
)

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Log to stderr; stdout carries the MCP protocol."""
    level_name = os.getenv("NODE_AGENT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _config() -> AgentConfig:
    # Re-read on every call so edits to the config file show up without a restart.
    return load_config()


mcp = FastMCP("node-health-agent", json_response=True)


@mcp.tool()
async def check_services() -> dict[str, Any]:
    """Check every configured systemd unit and return the alert records it would send."""
    return await check_services_impl(_config())


@mcp.tool()
async def check_websites() -> dict[str, Any]:
    """Check reachability, latency and TLS expiry of configured websites (no dispatch)."""
    return await check_websites_impl(_config())


@mcp.tool()
def list_log_sources() -> dict[str, Any]:
    """Resolve each log source glob to files and show their stored read positions."""
    return log_sources_impl(_config())


@mcp.resource("state://log-tail")
def log_tail_state() -> dict[str, Any]:
    """Return all persisted log tail states."""
    return tail_state_impl(_config())


@mcp.resource("app://node-health-agent/config")
def config_summary() -> dict[str, Any]:
    """Return the effective configuration with the API key masked."""
    data = _config().model_dump(mode="json")
    if data.get("api_key"):
        data["api_key"] = "***"
    return data


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
