"""Persisted per-file tail positions.

One small JSON document per (log source, resolved file) pair:

    {"name": "app:app.log", "file_id": {"ino": 1234, "dev": 2049}, "offset": 4096}

The logical name is stored alongside the position so a source can list the
files it tracked before, including ones its pattern no longer resolves.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from .models import FileIdentity, LogFileState

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path("~/.node-health-agent/state")

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]")


class StateStore(Protocol):
    """Read/write collaborator keyed by logical file name (``source:basename``)."""

    def load(self, logical_name: str) -> LogFileState:
        ...

    def save(self, logical_name: str, state: LogFileState) -> None:
        ...

    def entries_for(self, source_name: str) -> dict[str, LogFileState]:
        ...

    def forget(self, logical_name: str) -> None:
        ...


def sanitize_name(logical_name: str) -> str:
    """Map a logical name onto a filesystem-safe stem."""
    return _UNSAFE_RE.sub("_", logical_name)


def state_to_dict(state: LogFileState) -> dict:
    file_id = None
    if state.identity is not None:
        file_id = {"ino": state.identity.ino, "dev": state.identity.dev}
    return {"file_id": file_id, "offset": state.offset}


def state_from_dict(data: object) -> LogFileState:
    """Build a state from decoded JSON; anything malformed yields empty state."""
    if not isinstance(data, dict):
        return LogFileState()

    identity: FileIdentity | None = None
    file_id = data.get("file_id")
    if isinstance(file_id, dict):
        ino, dev = file_id.get("ino"), file_id.get("dev")
        if isinstance(ino, int) and isinstance(dev, int):
            identity = FileIdentity(dev=dev, ino=ino)

    offset = data.get("offset", 0)
    if not isinstance(offset, int) or offset < 0:
        offset = 0
    return LogFileState(identity=identity, offset=offset)


class JsonStateStore:
    """Directory of JSON state files, one per logical name."""

    def __init__(self, directory: str | Path = DEFAULT_STATE_DIR) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, logical_name: str) -> Path:
        return self.directory / f"{sanitize_name(logical_name)}.json"

    def load(self, logical_name: str) -> LogFileState:
        path = self.path_for(logical_name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return LogFileState()
        except OSError as exc:
            logger.warning("Unreadable state file %s (%s); starting from scratch", path, exc)
            return LogFileState()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt state file %s; starting from scratch", path)
            return LogFileState()
        return state_from_dict(data)

    def save(self, logical_name: str, state: LogFileState) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(logical_name)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"name": logical_name, **state_to_dict(state)}, f)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def entries(self) -> dict[str, LogFileState]:
        """Return every persisted state keyed by sanitized file stem."""
        if not self.directory.is_dir():
            return {}
        out: dict[str, LogFileState] = {}
        for path in sorted(self.directory.glob("*.json")):
            if path.name.startswith(".tmp-"):
                continue
            out[path.stem] = self.load_path(path)
        return out

    def load_path(self, path: Path) -> LogFileState:
        try:
            return state_from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError):
            return LogFileState()

    def entries_for(self, source_name: str) -> dict[str, LogFileState]:
        """Return persisted states of one log source keyed by logical name."""
        prefix = f"{source_name}:"
        if not self.directory.is_dir():
            return {}
        out: dict[str, LogFileState] = {}
        for path in sorted(self.directory.glob(f"{sanitize_name(prefix)}*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                continue
            name = data.get("name") if isinstance(data, dict) else None
            if isinstance(name, str) and name.startswith(prefix):
                out[name] = state_from_dict(data)
        return out

    def forget(self, logical_name: str) -> None:
        self.path_for(logical_name).unlink(missing_ok=True)
