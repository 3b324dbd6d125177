"""Agent configuration.

Loaded once at startup from a JSON file and passed explicitly into the
orchestrator. Heterogeneous inputs (bare service names vs. structured
records, optional regexes) are normalized here so the core only sees the
dataclasses from :mod:`.models`.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from .models import (
    DEFAULT_LOG_REGEX,
    DEFAULT_TAIL_LINES,
    LogSource,
    ServiceDef,
    SslThresholds,
    WebsiteDef,
)
from .state_store import DEFAULT_STATE_DIR

logger = logging.getLogger(__name__)

CONFIG_ENV = "NODE_AGENT_CONFIG"
API_KEY_ENV = "NODE_AGENT_API_KEY"
DEFAULT_CONFIG_PATH = "config.json"


class ConfigError(ValueError):
    """Raised when the configuration file is missing or invalid."""


class ServiceEntry(BaseModel):
    name: str = ""
    unit: str = Field(default="", validation_alias=AliasChoices("unit", "service"))


class LogSourceConfig(BaseModel):
    name: str
    path_pattern: str = Field(validation_alias=AliasChoices("path_pattern", "path", "glob"))
    regex: str | None = None
    tail_lines: int = Field(default=DEFAULT_TAIL_LINES, ge=1)

    @field_validator("regex")
    @classmethod
    def _regex_compiles(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"invalid regex {v!r}: {exc}") from exc
        return v


class SslThresholdsConfig(BaseModel):
    critical: int = Field(default=7, ge=0)
    warning: int = Field(default=14, ge=0)
    notice: int = Field(default=30, ge=0)

    def to_thresholds(self) -> SslThresholds:
        return SslThresholds(critical=self.critical, warning=self.warning, notice=self.notice)


class WebsiteConfig(BaseModel):
    name: str
    host: str
    protocol: Literal["http", "https"] = "https"
    port: int | None = Field(default=None, ge=1, le=65535)
    path: str = "/"
    response_threshold_ms: int | None = Field(default=None, gt=0)
    ssl_thresholds: SslThresholdsConfig | None = None


class AgentConfig(BaseModel):
    saas_url: str = "http://127.0.0.1"
    saas_port: int = 3000
    api_key: str = ""
    node_path: str = "/api2.0/node/track.json"
    alert_path: str = "/api2.0/alert/upsert.json"
    micro_service: str = "unknown"
    slots_quota: int = 1

    request_timeout: float = Field(default=10.0, gt=0)
    website_timeout: float = Field(default=5.0, gt=0)
    command_timeout: float = Field(default=10.0, gt=0)
    cpu_sample_interval: float = Field(default=0.2, ge=0)
    disk_mount: str = "/"
    state_dir: Path = DEFAULT_STATE_DIR

    services: list[str | ServiceEntry] = Field(default_factory=list)
    logs: list[LogSourceConfig] = Field(default_factory=list)
    websites: list[WebsiteConfig] = Field(default_factory=list)
    ssl_thresholds: SslThresholdsConfig = Field(default_factory=SslThresholdsConfig)

    def _url(self, path: str) -> str:
        return f"{self.saas_url.rstrip('/')}:{self.saas_port}{path}"

    @property
    def node_url(self) -> str:
        return self._url(self.node_path)

    @property
    def alert_url(self) -> str:
        return self._url(self.alert_path)

    def service_defs(self) -> list[ServiceDef]:
        """Normalize bare names and structured entries; drop empty identifiers."""
        out: list[ServiceDef] = []
        for entry in self.services:
            if isinstance(entry, str):
                unit = entry.strip()
                name = unit
            else:
                unit = entry.unit.strip()
                name = entry.name.strip() or unit
            if not unit:
                logger.warning("Ignoring service entry with empty identifier: %r", entry)
                continue
            out.append(ServiceDef(name=name, unit=unit))
        return out

    def log_sources(self) -> list[LogSource]:
        return [
            LogSource(
                name=s.name,
                path_pattern=s.path_pattern,
                regex=s.regex or DEFAULT_LOG_REGEX,
                tail_lines=s.tail_lines,
            )
            for s in self.logs
        ]

    def website_defs(self) -> list[WebsiteDef]:
        return [
            WebsiteDef(
                name=w.name,
                host=w.host,
                protocol=w.protocol,
                port=w.port,
                path=w.path,
                response_threshold_ms=w.response_threshold_ms,
                ssl_thresholds=w.ssl_thresholds.to_thresholds() if w.ssl_thresholds else None,
            )
            for w in self.websites
        ]

    def global_ssl_thresholds(self) -> SslThresholds:
        return self.ssl_thresholds.to_thresholds()


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    return Path(os.getenv(CONFIG_ENV, DEFAULT_CONFIG_PATH))


def load_config(path: str | Path | None = None) -> AgentConfig:
    """Read and validate the JSON config; apply environment overrides."""
    p = resolve_config_path(path).expanduser()
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {p}: {exc}") from exc

    try:
        cfg = AgentConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {p}:\n{exc}") from exc

    api_key = os.getenv(API_KEY_ENV)
    if api_key:
        cfg = cfg.model_copy(update={"api_key": api_key})
    return cfg
