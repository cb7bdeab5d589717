"""Behavior correlator: fold past runtime-guard denials into a skill's findings."""

from __future__ import annotations

from pathlib import Path

from clawshield.config import BEHAVIOR_WINDOW_LINES, default_audit_path
from clawshield.guard.audit import _parse_entry, tail_lines
from clawshield.models import AuditAction, AuditResult, Finding, FindingSource, Severity, Skill
from clawshield.scanner.categories import RiskCategory

EVIDENCE_MAX = 180

_KIND_SEVERITY: dict[str, Severity] = {
    "shell": Severity.HIGH,
    "network": Severity.HIGH,
    "fs_write": Severity.MEDIUM,
    "env": Severity.MEDIUM,
    "env_set": Severity.MEDIUM,
    "env_delete": Severity.MEDIUM,
}


def _format_details(details: dict) -> str:
    return " ".join(f"{k}={v}" for k, v in details.items())[:EVIDENCE_MAX]


def correlate_behavior(
    skill: Skill,
    audit_path: str | Path | None = None,
    window: int = BEHAVIOR_WINDOW_LINES,
) -> list[Finding]:
    """Map recent ``blocked`` runtime entries of *skill* to findings.

    Only the last *window* lines of the trail are read.
    """
    path = Path(audit_path).expanduser() if audit_path else default_audit_path()
    findings: list[Finding] = []

    for line in tail_lines(path, window):
        entry = _parse_entry(line)
        if entry is None:
            continue
        if entry.action != AuditAction.RUNTIME.value:
            continue
        if not entry.skill_id or entry.skill_id != skill.id:
            continue
        if entry.result != AuditResult.BLOCKED.value:
            continue

        kind = entry.details.get("kind")
        kind = kind if isinstance(kind, str) else "runtime"
        findings.append(
            RiskCategory.RUNTIME_BLOCKED.finding(
                FindingSource.BEHAVIOR,
                location=str(path),
                evidence=_format_details(entry.details),
                severity=_KIND_SEVERITY.get(kind, Severity.MEDIUM),
                description=f"Runtime guard blocked {kind} action",
            )
        )

    return findings
