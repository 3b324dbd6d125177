"""Incremental log scanning with rotation detection.

Each resolved file keeps a persisted (identity, offset) pair. A scan resumes
at the stored offset while the file identity is unchanged; a new identity, a
missing state, or a file that shrank below the offset restarts from byte 0.

Only newline-terminated lines are consumed. A trailing partial line (file
still being written) stays unread and is picked up on the next cycle.

Alert types: ``LOG_ISSUE:<source>`` tracks whether the pattern resolves at all
(solved every cycle it does), ``LOG_ISSUE:<source>:<basename>`` tracks one file.
"""

from __future__ import annotations

import glob
import logging
import os
import re
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from .models import AlertRecord, FileIdentity, LogFileState, LogSource
from .state_store import StateStore

logger = logging.getLogger(__name__)

LOG_ALERT_PREFIX = "LOG_ISSUE"


def stat_identity(path: Path) -> tuple[FileIdentity, int]:
    """Return (identity, size) for a path; raises OSError if it is gone."""
    st = os.stat(path)
    return FileIdentity(dev=st.st_dev, ino=st.st_ino), st.st_size


def logical_name(source: LogSource, path: Path) -> str:
    return f"{source.name}:{path.name}"


def alert_type(name: str) -> str:
    return f"{LOG_ALERT_PREFIX}:{name}"


def _problem(key: str, description: str) -> AlertRecord:
    return AlertRecord(type=key, description=description, solved=False)


def resolve_paths(pattern: str) -> list[Path]:
    """Expand a glob into existing regular files, sorted for stable output."""
    matches = glob.glob(os.path.expanduser(pattern))
    return [Path(p) for p in sorted(matches) if not os.path.isdir(p)]


@dataclass(frozen=True, slots=True)
class TailResult:
    """Matches found since the last position, plus where to resume."""

    matches: list[str]
    match_count: int
    end_offset: int


async def read_new_matches(
    path: Path,
    *,
    start: int,
    pattern: re.Pattern[str],
    keep_last: int,
    encoding: str = "utf-8",
    decode_errors: str = "replace",
) -> TailResult:
    """Stream complete lines from ``start`` and keep the last N regex matches."""
    sample: deque[str] = deque(maxlen=keep_last)
    count = 0
    offset = start

    async with aiofiles.open(path, mode="rb") as f:
        await f.seek(start)
        async for raw in f:
            if not raw.endswith(b"\n"):
                # Partial line; leave it for the next cycle.
                break
            offset += len(raw)
            line = raw.decode(encoding, errors=decode_errors).rstrip("\r\n")
            if pattern.search(line):
                sample.append(line)
                count += 1

    return TailResult(matches=list(sample), match_count=count, end_offset=offset)


class LogTailEngine:
    """Scan log sources for new matching lines since the previous cycle."""

    def __init__(
        self,
        *,
        identity_of: Callable[[Path], tuple[FileIdentity, int]] = stat_identity,
        encoding: str = "utf-8",
    ) -> None:
        self._identity_of = identity_of
        self._encoding = encoding

    async def scan(self, sources: list[LogSource], state_store: StateStore) -> list[AlertRecord]:
        records: list[AlertRecord] = []
        for source in sources:
            records.extend(await self.scan_source(source, state_store))
        return records

    async def scan_source(self, source: LogSource, state_store: StateStore) -> list[AlertRecord]:
        source_key = alert_type(source.name)
        paths = resolve_paths(source.path_pattern)
        vanished = self.report_vanished(source, paths, state_store)
        if not paths:
            logger.warning("Log source %s: no files match %s", source.name, source.path_pattern)
            return [
                _problem(
                    source_key,
                    f"Log source {source.name}: no files match pattern {source.path_pattern}",
                ),
                *vanished,
            ]

        try:
            pattern = re.compile(source.regex)
        except re.error as exc:
            return [
                _problem(
                    source_key,
                    f"Log source {source.name}: invalid regex {source.regex!r}: {exc}",
                ),
                *vanished,
            ]

        records = [
            AlertRecord(
                type=source_key,
                description=(
                    f"Log source {source.name}: {len(paths)} file(s) match pattern "
                    f"{source.path_pattern}"
                ),
                solved=True,
            )
        ]
        for path in paths:
            records.extend(await self.scan_file(source, path, pattern, state_store))
        records.extend(vanished)
        return records

    def report_vanished(
        self, source: LogSource, paths: list[Path], state_store: StateStore
    ) -> list[AlertRecord]:
        """Alert once for each tracked file the pattern no longer resolves.

        The state is dropped afterwards, so a file that comes back is scanned
        from the start and reported as recovered.
        """
        current = {logical_name(source, path) for path in paths}
        records: list[AlertRecord] = []
        for name in sorted(state_store.entries_for(source.name)):
            if name in current:
                continue
            basename = name.removeprefix(f"{source.name}:")
            logger.warning("Logfile %s of source %s disappeared", basename, source.name)
            records.append(
                _problem(
                    alert_type(name),
                    f"Logfile {basename} ({source.path_pattern}) disappeared",
                )
            )
            state_store.forget(name)
        return records

    async def scan_file(
        self,
        source: LogSource,
        path: Path,
        pattern: re.Pattern[str],
        state_store: StateStore,
    ) -> list[AlertRecord]:
        name = logical_name(source, path)
        key = alert_type(name)

        try:
            identity, size = self._identity_of(path)
        except FileNotFoundError:
            logger.warning("Logfile %s disappeared", path)
            return [_problem(key, f"Logfile {path} disappeared")]
        except OSError as exc:
            return [_problem(key, f"Cannot stat logfile {path}: {exc}")]

        prior = state_store.load(name)
        rotated = prior.identity is None or prior.identity != identity
        truncated = not rotated and size < prior.offset
        start = 0 if (rotated or truncated) else prior.offset
        if rotated and prior.identity is not None:
            logger.info("Logfile %s was replaced; rescanning from start", path)
        elif truncated:
            logger.info("Logfile %s shrank below offset %d; rescanning", path, prior.offset)

        try:
            result = await read_new_matches(
                path,
                start=start,
                pattern=pattern,
                keep_last=source.tail_lines,
                encoding=self._encoding,
            )
        except FileNotFoundError:
            logger.warning("Logfile %s disappeared while reading", path)
            return [_problem(key, f"Logfile {path} disappeared")]
        except OSError as exc:
            logger.warning("Cannot read logfile %s: %s", path, exc)
            return [_problem(key, f"Cannot read logfile {path}: {exc}")]

        state_store.save(name, LogFileState(identity=identity, offset=result.end_offset))
        logger.debug(
            "Logfile %s scanned %d..%d, %d match(es)",
            path,
            start,
            result.end_offset,
            result.match_count,
        )

        records: list[AlertRecord] = []
        if rotated:
            records.append(
                AlertRecord(type=key, description=f"Logfile {path} recovered", solved=True)
            )
        if result.match_count:
            records.append(
                AlertRecord(type=key, description="\n".join(result.matches), solved=False)
            )
        return records
