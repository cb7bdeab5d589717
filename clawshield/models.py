"""Data models used throughout ClawShield."""

from __future__ import annotations

import enum
import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------


class Severity(enum.IntEnum):
    """Finding severity, ordered so higher value == more severe."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_str(cls, label: str) -> Severity:
        return cls[label.upper()]

    def __str__(self) -> str:
        return self.name.lower()


class FindingSource(str, enum.Enum):
    """Which detector produced a finding."""

    PATTERN = "pattern"
    SYNTAX = "syntax"
    DEPENDENCY = "dependency"
    BEHAVIOR = "behavior"


class Recommendation(str, enum.Enum):
    ALLOW = "allow"
    SANDBOX = "sandbox"
    BLOCK = "block"


# ---------------------------------------------------------------------------
# Finding
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    """One detected risk signal."""

    category: str
    severity: Severity
    description: str
    source: FindingSource
    location: str | None = None
    line: int | None = None
    evidence: str | None = None

    @property
    def dedup_key(self) -> tuple:
        """Overlapping detectors reporting the same thing share this key."""
        return (self.category, self.location or "", self.line or 0, self.evidence or "")

    def sort_key(self) -> tuple:
        """Deterministic sort: severity desc, file asc, line asc."""
        return (
            -self.severity.value,
            self.location or "",
            self.line or 0,
            self.category,
            self.evidence or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.category,
            "severity": str(self.severity),
            "description": self.description,
            "source": self.source.value,
        }
        if self.location is not None:
            data["location"] = self.location
        if self.line is not None:
            data["line"] = self.line
        if self.evidence is not None:
            data["evidence"] = self.evidence
        return data


def dedupe_findings(findings: list[Finding]) -> list[Finding]:
    """Drop findings whose :attr:`Finding.dedup_key` was already seen."""
    seen: set[tuple] = set()
    unique: list[Finding] = []
    for f in findings:
        if f.dedup_key in seen:
            continue
        seen.add(f.dedup_key)
        unique.append(f)
    return unique


# ---------------------------------------------------------------------------
# Scan result (aggregate)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskScanResult:
    """Complete output of one skill scan. Built once, never mutated."""

    score: int
    findings: tuple[Finding, ...]
    explanation: str
    recommendation: Recommendation
    scanned_at: str
    counts_by_source: dict[str, int] = field(default_factory=dict)

    def categories(self) -> set[str]:
        return {f.category for f in self.findings}

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "flags": [f.to_dict() for f in self.findings],
            "explanation": self.explanation,
            "recommendation": self.recommendation.value,
            "scannedAt": self.scanned_at,
            "dependencyCount": self.counts_by_source.get("dependency", 0),
            "astCount": self.counts_by_source.get("syntax", 0),
            "behaviorCount": self.counts_by_source.get("behavior", 0),
        }


# ---------------------------------------------------------------------------
# Skill
# ---------------------------------------------------------------------------


def skill_id_for(path: str | os.PathLike[str]) -> str:
    """Stable short id derived from the skill's canonical path."""
    canonical = os.path.abspath(os.path.realpath(os.fspath(path)))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


@dataclass
class Skill:
    """One installable skill as supplied by discovery."""

    path: str
    name: str = ""
    id: str = ""
    source: str = "workspace"  # bundled | managed | workspace
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = skill_id_for(self.path)
        if not self.name:
            self.name = os.path.basename(os.path.normpath(self.path))


# ---------------------------------------------------------------------------
# Audit entry
# ---------------------------------------------------------------------------


class AuditAction(str, enum.Enum):
    SCAN = "scan"
    INSTALL = "install"
    BLOCK = "block"
    POLICY_CHANGE = "policy_change"
    ENABLE = "enable"
    DISABLE = "disable"
    RUNTIME = "runtime"


class AuditResult(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AuditEntry:
    """A single record of the append-only audit trail."""

    id: str
    timestamp: str
    action: str
    result: str
    details: dict[str, Any] = field(default_factory=dict)
    skill_id: str | None = None
    skill_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "action": self.action,
            "result": self.result,
            "skillId": self.skill_id,
            "skillName": self.skill_name,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AuditEntry:
        """Build an entry from a decoded JSON line.

        Raises ``KeyError`` / ``TypeError`` on records missing the required
        fields; callers reading the trail treat those as malformed lines.
        """
        details = raw.get("details") or {}
        if not isinstance(details, dict):
            raise TypeError("details must be an object")
        return cls(
            id=str(raw["id"]),
            timestamp=str(raw["timestamp"]),
            action=str(raw["action"]),
            result=str(raw.get("result", AuditResult.SUCCESS.value)),
            details=details,
            skill_id=raw.get("skillId"),
            skill_name=raw.get("skillName"),
        )


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class DirectoryMode(str, enum.Enum):
    READ = "read"
    READWRITE = "readwrite"


@dataclass(frozen=True)
class DirectoryPermission:
    path: str
    mode: DirectoryMode = DirectoryMode.READ

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "mode": self.mode.value}


@dataclass(frozen=True)
class Policy:
    """Blocked-operation gates plus allow-lists.

    Frozen: changes go through :func:`dataclasses.replace` so a field is
    always swapped whole.
    """

    block_shell: bool = True
    block_secrets: bool = True
    block_network: bool = False
    block_fs_write: bool = False
    allowed_dirs: tuple[DirectoryPermission, ...] = ()
    allowed_domains: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowedDirs": [d.to_dict() for d in self.allowed_dirs],
            "allowedDomains": list(self.allowed_domains),
            "blockShell": self.block_shell,
            "blockSecrets": self.block_secrets,
            "blockNetwork": self.block_network,
            "blockFsWrite": self.block_fs_write,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Policy:
        """Parse the JSON form; absent or mistyped fields take their defaults."""
        if not isinstance(raw, dict):
            return cls()
        defaults = cls()

        def _flag(key: str, fallback: bool) -> bool:
            value = raw.get(key)
            return value if isinstance(value, bool) else fallback

        dirs: list[DirectoryPermission] = []
        for entry in raw.get("allowedDirs") or []:
            if isinstance(entry, str):
                dirs.append(DirectoryPermission(entry))
            elif isinstance(entry, dict) and isinstance(entry.get("path"), str):
                try:
                    mode = DirectoryMode(entry.get("mode", "read"))
                except ValueError:
                    mode = DirectoryMode.READ
                dirs.append(DirectoryPermission(entry["path"], mode))

        domains = [d for d in raw.get("allowedDomains") or [] if isinstance(d, str)]

        return cls(
            block_shell=_flag("blockShell", defaults.block_shell),
            block_secrets=_flag("blockSecrets", defaults.block_secrets),
            block_network=_flag("blockNetwork", defaults.block_network),
            block_fs_write=_flag("blockFsWrite", defaults.block_fs_write),
            allowed_dirs=tuple(dirs),
            allowed_domains=tuple(domains),
        )
