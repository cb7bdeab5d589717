"""Audit trail: append-only JSONL log of scans, policy decisions and admin actions.

Each line is one :class:`~clawshield.models.AuditEntry` encoded as JSON:
  - ``id``: uuid4
  - ``timestamp``: ISO-8601 UTC
  - ``action``: ``scan`` | ``install`` | ``block`` | ``policy_change`` |
    ``enable`` | ``disable`` | ``runtime``
  - ``result``: ``success`` | ``failure`` | ``blocked``
  - ``skillId`` / ``skillName``: optional skill identity
  - ``details``: free-form object (``kind``, ``target``, ``fn`` for runtime
    entries)

Records are written with a single ``write`` on a file opened for append,
so concurrent writers never interleave partial lines.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from clawshield.config import default_audit_path
from clawshield.models import AuditAction, AuditEntry, AuditResult, now_iso

logger = logging.getLogger(__name__)

_READ_BLOCK = 8192


def _resolve(log_path: str | Path | None) -> Path:
    return Path(log_path).expanduser() if log_path else default_audit_path()


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def write_audit_entry(
    action: str,
    result: str = AuditResult.SUCCESS.value,
    *,
    details: dict[str, Any] | None = None,
    skill_id: str | None = None,
    skill_name: str | None = None,
    log_path: str | Path | None = None,
) -> AuditEntry:
    """Append one entry to the audit trail and return it.

    Write errors are logged and swallowed; the entry is returned either way.
    """
    entry = AuditEntry(
        id=str(uuid.uuid4()),
        timestamp=now_iso(),
        action=str(getattr(action, "value", action)),
        result=str(getattr(result, "value", result)),
        details=dict(details or {}),
        skill_id=skill_id,
        skill_name=skill_name,
    )
    dest = _resolve(log_path)
    line = json.dumps(entry.to_dict(), ensure_ascii=False, default=str) + "\n"
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "a", encoding="utf-8") as f:
            f.write(line)
    except OSError as exc:
        logger.debug("Audit write to %s failed: %s", dest, exc)
    return entry


def log_scan(
    skill_id: str,
    skill_name: str,
    score: int,
    flags: list[str],
    *,
    log_path: str | Path | None = None,
) -> AuditEntry:
    return write_audit_entry(
        AuditAction.SCAN,
        details={"score": score, "flagCount": len(flags), "flags": flags[:5]},
        skill_id=skill_id,
        skill_name=skill_name,
        log_path=log_path,
    )


def log_install(
    skill_id: str,
    skill_name: str,
    source: str,
    *,
    log_path: str | Path | None = None,
) -> AuditEntry:
    return write_audit_entry(
        AuditAction.INSTALL,
        details={"source": source},
        skill_id=skill_id,
        skill_name=skill_name,
        log_path=log_path,
    )


def log_block(
    skill_id: str,
    skill_name: str,
    reason: str,
    *,
    log_path: str | Path | None = None,
) -> AuditEntry:
    return write_audit_entry(
        AuditAction.BLOCK,
        AuditResult.BLOCKED,
        details={"reason": reason},
        skill_id=skill_id,
        skill_name=skill_name,
        log_path=log_path,
    )


def log_policy_change(
    changes: dict[str, Any],
    *,
    log_path: str | Path | None = None,
) -> AuditEntry:
    return write_audit_entry(AuditAction.POLICY_CHANGE, details=changes, log_path=log_path)


def log_toggle(
    skill_id: str,
    skill_name: str,
    enabled: bool,
    *,
    log_path: str | Path | None = None,
) -> AuditEntry:
    return write_audit_entry(
        AuditAction.ENABLE if enabled else AuditAction.DISABLE,
        skill_id=skill_id,
        skill_name=skill_name,
        log_path=log_path,
    )


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _iter_lines_reversed(path: Path):
    """Yield lines of *path* from last to first, reading backward in blocks."""
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        pos = f.tell()
        tail = b""
        while pos > 0:
            step = min(_READ_BLOCK, pos)
            pos -= step
            f.seek(pos)
            chunk = f.read(step) + tail
            parts = chunk.split(b"\n")
            tail = parts.pop(0)
            for raw in reversed(parts):
                yield raw.decode("utf-8", errors="replace")
        if tail:
            yield tail.decode("utf-8", errors="replace")


def _parse_entry(line: str) -> AuditEntry | None:
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
        if not isinstance(raw, dict):
            return None
        return AuditEntry.from_dict(raw)
    except (json.JSONDecodeError, KeyError, TypeError):
        return None


def tail_lines(log_path: str | Path | None, n: int) -> list[str]:
    """Return the last *n* non-empty lines of the trail, oldest first."""
    dest = _resolve(log_path)
    if n <= 0 or not dest.is_file():
        return []
    lines: list[str] = []
    try:
        for line in _iter_lines_reversed(dest):
            if not line.strip():
                continue
            lines.append(line)
            if len(lines) >= n:
                break
    except OSError as exc:
        logger.debug("Cannot read audit trail %s: %s", dest, exc)
        return []
    lines.reverse()
    return lines


def read_recent_entries(
    limit: int = 50,
    *,
    log_path: str | Path | None = None,
) -> list[AuditEntry]:
    """Return up to *limit* valid entries, newest first.

    Malformed lines are skipped and do not count toward *limit*.
    """
    dest = _resolve(log_path)
    if limit <= 0 or not dest.is_file():
        return []
    entries: list[AuditEntry] = []
    try:
        for line in _iter_lines_reversed(dest):
            entry = _parse_entry(line)
            if entry is None:
                continue
            entries.append(entry)
            if len(entries) >= limit:
                break
    except OSError as exc:
        logger.debug("Cannot read audit trail %s: %s", dest, exc)
    return entries


def read_audit_entries(
    *,
    log_path: str | Path | None = None,
    since: str | None = None,
    only_blocked: bool = False,
) -> list[AuditEntry]:
    """Read the whole trail, oldest first, with optional filtering.

    ``since`` supports either:
      - relative: ``15m``, ``24h``, ``7d``
      - absolute ISO-8601 timestamp
    """
    dest = _resolve(log_path)
    if not dest.is_file():
        return []

    cutoff = _parse_since(since) if since else None

    entries: list[AuditEntry] = []
    try:
        with open(dest, encoding="utf-8", errors="replace") as f:
            for line in f:
                entry = _parse_entry(line)
                if entry is None:
                    continue
                if cutoff is not None:
                    ts = _parse_timestamp(entry.timestamp)
                    if ts is None or ts < cutoff:
                        continue
                if only_blocked and entry.result != AuditResult.BLOCKED.value:
                    continue
                entries.append(entry)
    except OSError:
        return []

    return entries


def clear_audit_log(log_path: str | Path | None = None) -> None:
    """Truncate the trail; a missing file is left missing."""
    dest = _resolve(log_path)
    if dest.is_file():
        with open(dest, "w", encoding="utf-8"):
            pass


def _parse_since(since: str) -> datetime | None:
    """Parse relative/absolute since value into UTC datetime."""
    val = since.strip().lower()
    now = datetime.now(timezone.utc)

    if len(val) >= 2 and val[:-1].isdigit() and val[-1] in {"m", "h", "d"}:
        amount = int(val[:-1])
        unit = val[-1]
        if unit == "m":
            return now - timedelta(minutes=amount)
        if unit == "h":
            return now - timedelta(hours=amount)
        return now - timedelta(days=amount)

    return _parse_timestamp(since.strip())


def _parse_timestamp(raw: Any) -> datetime | None:
    """Parse an entry timestamp to aware UTC datetime."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    val = raw.strip().replace("Z", "+00:00").replace("z", "+00:00")
    try:
        ts = datetime.fromisoformat(val)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
