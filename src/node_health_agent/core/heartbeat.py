"""Heartbeat payload and node identity extraction."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .config import AgentConfig
from .metrics import MetricsSnapshot

MAX_USAGE = 90.0
NODE_ID_KEYS = ("id_node", "id")

# Provisioning lifecycle fields owned by the collector, always sent empty.
_RESERVED_FIELDS = (
    "ssh_username",
    "ssh_password",
    "ssh_root_username",
    "ssh_root_password",
    "postgres_username",
    "postgres_password",
    "creation_time",
    "creation_success",
    "creation_error_description",
    "installation_time",
    "installation_success",
    "installation_error_description",
    "migrations_time",
    "migrations_success",
    "migrations_error_description",
    "last_stop_time",
    "last_stop_success",
    "last_stop_description",
)


def build_heartbeat_payload(
    config: AgentConfig, metrics: MetricsSnapshot, now: datetime
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "api_key": config.api_key,
        "micro_service": config.micro_service,
        "slots_quota": config.slots_quota,
        "slots_used": 0,
        "total_ram_gb": metrics.total_ram_gb,
        "total_disk_gb": metrics.total_disk_gb,
        "current_ram_usage": metrics.current_ram_usage,
        "current_disk_usage": metrics.current_disk_usage,
        "current_cpu_usage": metrics.current_cpu_usage,
        "max_ram_usage": MAX_USAGE,
        "max_disk_usage": MAX_USAGE,
        "max_cpu_usage": MAX_USAGE,
        "last_start_time": now.isoformat(),
        "last_start_success": True,
        "last_start_description": "heartbeat",
    }
    body.update(dict.fromkeys(_RESERVED_FIELDS))
    return body


def extract_node_id(body: dict[str, Any]) -> str | int | None:
    """Return the node identifier from a heartbeat response, if any."""
    for key in NODE_ID_KEYS:
        value = body.get(key)
        if value not in (None, ""):
            return value
    return None
