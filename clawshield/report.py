"""Report rendering: text and JSON views of scans, policies and the audit trail."""

from __future__ import annotations

import json
from typing import Any

import clawshield
from clawshield.gate import InstallDecision
from clawshield.models import AuditEntry, Finding, Policy, Recommendation, RiskScanResult, Severity, Skill

# ---------------------------------------------------------------------------
# Text output
# ---------------------------------------------------------------------------

_SEV_COLORS = {
    Severity.CRITICAL: "\033[91m",  # red
    Severity.HIGH: "\033[93m",      # yellow
    Severity.MEDIUM: "\033[94m",    # blue
    Severity.LOW: "\033[90m",       # grey
}
_REC_COLORS = {
    Recommendation.ALLOW: "\033[92m",
    Recommendation.SANDBOX: "\033[93m",
    Recommendation.BLOCK: "\033[91m",
}
_RESET = "\033[0m"


def _paint(text: str, code: str, color: bool) -> str:
    return f"{code}{text}{_RESET}" if color and code else text


def _location(f: Finding) -> str:
    if not f.location:
        return "-"
    return f"{f.location}:{f.line}" if f.line else f.location


def render_text(
    result: RiskScanResult,
    skill: Skill | None = None,
    decision: InstallDecision | None = None,
    color: bool = True,
) -> str:
    """Produce human-friendly text output."""
    lines: list[str] = []

    lines.append("=" * 60)
    lines.append("ClawShield Risk Report")
    lines.append("=" * 60)
    if skill is not None:
        lines.append(f"Skill:    {skill.name}  ({skill.id})")
        lines.append(f"Path:     {skill.path}")
    rec = result.recommendation
    lines.append(f"Score:    {result.score}/100")
    lines.append(f"Verdict:  {_paint(rec.value.upper(), _REC_COLORS.get(rec, ''), color)}")
    lines.append("")
    lines.append(result.explanation)
    lines.append("")

    if result.findings:
        by_sev: dict[Severity, list[Finding]] = {}
        for f in result.findings:
            by_sev.setdefault(f.severity, []).append(f)

        for sev in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW):
            group = by_sev.get(sev, [])
            if not group:
                continue
            label = _paint(sev.name, _SEV_COLORS.get(sev, ""), color)
            lines.append(f"-- {label} ({len(group)}) --")
            for f in group:
                lines.append(f"  [{f.category}] {_location(f)}  ({f.source.value})")
                lines.append(f"    {f.description}")
                if f.evidence:
                    lines.append(f"    > {f.evidence}")
            lines.append("")

    lines.append("-" * 60)
    lines.append(
        "Sources: "
        f"{result.counts_by_source.get('pattern', 0)} pattern, "
        f"{result.counts_by_source.get('syntax', 0)} syntax, "
        f"{result.counts_by_source.get('dependency', 0)} dependency, "
        f"{result.counts_by_source.get('behavior', 0)} behavior"
    )
    if decision is not None:
        verdict = "yes" if decision.can_install else f"no ({decision.block_reason})"
        lines.append(f"Install:  {verdict}")
    lines.append("=" * 60)

    return "\n".join(lines)


def render_policy_text(policy: Policy) -> str:
    lines = [
        f"blockShell:     {policy.block_shell}",
        f"blockSecrets:   {policy.block_secrets}",
        f"blockNetwork:   {policy.block_network}",
        f"blockFsWrite:   {policy.block_fs_write}",
        "allowedDirs:",
    ]
    lines.extend(f"  {d.path}  [{d.mode.value}]" for d in policy.allowed_dirs)
    if not policy.allowed_dirs:
        lines.append("  (none)")
    lines.append("allowedDomains:")
    lines.extend(f"  {d}" for d in policy.allowed_domains)
    if not policy.allowed_domains:
        lines.append("  (none)")
    return "\n".join(lines)


def render_audit_text(entries: list[AuditEntry]) -> str:
    if not entries:
        return "No audit entries."
    lines: list[str] = []
    for e in entries:
        who = e.skill_name or e.skill_id or "-"
        details = " ".join(f"{k}={v}" for k, v in e.details.items())
        lines.append(f"{e.timestamp}  {e.action:<13} {e.result:<8} {who}  {details}".rstrip())
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# JSON output
# ---------------------------------------------------------------------------


def render_json(
    result: RiskScanResult,
    skill: Skill | None = None,
    decision: InstallDecision | None = None,
) -> str:
    """Produce stable JSON output (findings already sorted)."""
    doc: dict[str, Any] = {
        "tool": "clawshield",
        "version": clawshield.__version__,
    }
    if skill is not None:
        doc["skill"] = {
            "id": skill.id,
            "name": skill.name,
            "path": skill.path,
            "source": skill.source,
        }
    doc["risk"] = result.to_dict()
    if decision is not None:
        doc["preflight"] = decision.to_dict()
    return json.dumps(doc, indent=2, ensure_ascii=False)


def render_audit_json(entries: list[AuditEntry]) -> str:
    return json.dumps([e.to_dict() for e in entries], indent=2, ensure_ascii=False)
