"""Scanner: run every detector over a skill and build its risk result."""

from __future__ import annotations

import logging
from pathlib import Path

from clawshield.config import DEFAULT_THRESHOLDS, RiskThresholds
from clawshield.discovery import SKILL_MANIFEST, list_skill_files, skill_for_path
from clawshield.exceptions import SkillNotFoundError
from clawshield.models import Finding, RiskScanResult, Skill, dedupe_findings
from clawshield.scanner.behavior import correlate_behavior
from clawshield.scanner.categories import SourceLanguage, language_for
from clawshield.scanner.md_parser import parse_markdown, split_front_matter
from clawshield.scanner.patterns import match_text
from clawshield.scanner.py_analyzer import analyze_python_source
from clawshield.scanner.rules import Rule
from clawshield.scanner.scorer import build_result
from clawshield.scanner.supply_chain import audit_dependencies

logger = logging.getLogger(__name__)


def _read(file_path: Path) -> str | None:
    try:
        return file_path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Skipping unreadable file %s: %s", file_path, exc)
        return None


def scan_file(file_path: Path, rules: list[Rule] | None = None) -> list[Finding]:
    """Scan a single file and return its findings.

    Dispatches on file type:
    - ``.md`` → Markdown segments (fenced code by info string, prose)
    - ``.py`` → syntax analysis plus pattern rules
    - everything else → pattern rules for the extension's language
    """
    file_path = Path(file_path)
    text = _read(file_path)
    if text is None:
        return []

    if file_path.suffix.lower() == ".md":
        return _scan_markdown(file_path, text, rules)

    language = language_for(file_path)
    findings = match_text(text, str(file_path), language, rules)
    if language is SourceLanguage.PYTHON:
        findings = _merge_python(findings, analyze_python_source(text, str(file_path)))
    return findings


# ---------------------------------------------------------------------------
# Markdown-aware scanner
# ---------------------------------------------------------------------------


def _scan_markdown(file_path: Path, text: str, rules: list[Rule] | None) -> list[Finding]:
    """Front matter and prose get ``all`` rules; code blocks their own language."""
    front_matter, body, offset = split_front_matter(text)
    location = str(file_path)
    findings: list[Finding] = []

    if front_matter is not None:
        findings.extend(match_text(front_matter, location, SourceLanguage.OTHER, rules, first_line=2))

    for segment in parse_markdown(body):
        language = segment.language if segment.kind == "code" else SourceLanguage.OTHER
        findings.extend(
            match_text(
                segment.content.rstrip("\n"),
                location,
                language,
                rules,
                first_line=segment.start_line + offset,
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Python: syntax + pattern
# ---------------------------------------------------------------------------


def _merge_python(pattern: list[Finding], syntax: list[Finding]) -> list[Finding]:
    """Prefer syntax findings where both detectors flag the same (category, line)."""
    covered = {(f.category, f.line) for f in syntax}
    kept = [f for f in pattern if (f.category, f.line) not in covered]
    return syntax + kept


# ---------------------------------------------------------------------------
# Skill-level scan
# ---------------------------------------------------------------------------


def scan_skill(
    skill: Skill,
    files: list[Path] | None = None,
    rules: list[Rule] | None = None,
    audit_path: str | Path | None = None,
    include_behavior: bool = True,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RiskScanResult:
    """Scan one skill: source files, dependencies and runtime history.

    *files* defaults to :func:`~clawshield.discovery.list_skill_files`.
    Raises :class:`SkillNotFoundError` when the skill folder is missing.
    """
    root = Path(skill.path)
    if not root.is_dir():
        raise SkillNotFoundError(skill.path)

    if files is None:
        files = list_skill_files(root)
    files = [Path(f) for f in files]
    manifest = root / SKILL_MANIFEST
    if manifest.is_file() and manifest not in files:
        files.append(manifest)

    findings: list[Finding] = []
    for fpath in sorted(set(files)):
        findings.extend(scan_file(fpath, rules))

    findings.extend(audit_dependencies(root))

    if include_behavior:
        findings.extend(correlate_behavior(skill, audit_path))

    result = build_result(dedupe_findings(findings), thresholds)
    logger.debug(
        "Scanned %s: %d files, %d findings, score %d",
        skill.name, len(files), len(result.findings), result.score,
    )
    return result


def scan_skill_path(skill_path: str | Path, **kwargs) -> RiskScanResult:
    """Scan a folder that may not have been discovered yet (preflight)."""
    return scan_skill(skill_for_path(skill_path), **kwargs)
