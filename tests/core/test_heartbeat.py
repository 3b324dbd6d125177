from __future__ import annotations

from datetime import UTC, datetime

from node_health_agent.core.config import AgentConfig
from node_health_agent.core.heartbeat import build_heartbeat_payload, extract_node_id
from node_health_agent.core.metrics import MetricsSnapshot, PsutilMetrics, sample


class StaticMetrics:
    def total_ram_gb(self) -> float:
        return 15.5

    def current_ram_usage_percent(self) -> float:
        return 40.25

    def current_cpu_usage_percent(self, sample_interval: float = 0.2) -> float:
        return 12.5

    def total_disk_gb(self, mount: str = "/") -> int:
        return 100

    def current_disk_usage_percent(self, mount: str = "/") -> float:
        return 55.0


def test_payload_fields() -> None:
    cfg = AgentConfig(api_key="k", micro_service="worker-rpa", slots_quota=5)
    now = datetime(2026, 1, 1, 8, 30, tzinfo=UTC)

    body = build_heartbeat_payload(cfg, sample(StaticMetrics()), now)

    assert body["api_key"] == "k"
    assert body["micro_service"] == "worker-rpa"
    assert body["slots_quota"] == 5 and body["slots_used"] == 0
    assert body["total_ram_gb"] == 15.5 and body["total_disk_gb"] == 100
    assert body["current_ram_usage"] == 40.25
    assert body["current_disk_usage"] == 55.0
    assert body["current_cpu_usage"] == 12.5
    assert body["max_cpu_usage"] == body["max_ram_usage"] == body["max_disk_usage"] == 90.0
    assert body["last_start_time"] == "2026-01-01T08:30:00+00:00"
    assert body["last_start_success"] is True
    assert body["creation_time"] is None and body["last_stop_description"] is None
    assert "ssh_password" in body and body["ssh_password"] is None


def test_empty_snapshot_defaults() -> None:
    body = build_heartbeat_payload(AgentConfig(), MetricsSnapshot(), datetime.now(UTC))
    assert body["current_cpu_usage"] == 0.0


def test_extract_node_id() -> None:
    assert extract_node_id({"id_node": 12}) == 12
    assert extract_node_id({"id": "abc"}) == "abc"
    assert extract_node_id({"id_node": "", "id": 3}) == 3
    assert extract_node_id({"status": "ok"}) is None
    assert extract_node_id({"raw": "<html>"}) is None


def test_psutil_metrics_ranges() -> None:
    metrics = PsutilMetrics()

    assert metrics.total_ram_gb() > 0
    assert 0.0 <= metrics.current_ram_usage_percent() <= 100.0
    assert 0.0 <= metrics.current_cpu_usage_percent(0.01) <= 100.0
    assert 0.0 <= metrics.current_disk_usage_percent("/") <= 100.0
    assert isinstance(metrics.total_disk_gb("/"), int)
