"""Pattern matcher: line-oriented regex scanning against the rule tables."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from clawshield.models import Finding, FindingSource
from clawshield.scanner.categories import RiskCategory, SourceLanguage
from clawshield.scanner.rules import DEFAULT_RULES, Rule

LONG_LINE_THRESHOLD = 500
EVIDENCE_MAX = 160
_COMMENT_MARKERS = ("//", "#")


def _group_by_category(
    rules: Iterable[Rule], language: SourceLanguage
) -> list[tuple[RiskCategory, list[Rule]]]:
    """Applicable rules per category; language-specific rules before ``all``."""
    grouped: dict[RiskCategory, list[Rule]] = {}
    for rule in rules:
        if rule.applies_to(language) and not rule.any_language:
            grouped.setdefault(rule.category, []).append(rule)
    for rule in rules:
        if rule.any_language:
            grouped.setdefault(rule.category, []).append(rule)
    return list(grouped.items())


def match_lines(
    lines: Sequence[str],
    file_path: str,
    language: SourceLanguage,
    rules: Sequence[Rule] | None = None,
    *,
    first_line: int = 1,
) -> list[Finding]:
    """Scan *lines* and return positional findings.

    At most one finding per (category, line): the first matching rule wins
    and the remaining rules of that category are skipped for the line.
    *first_line* offsets reported line numbers for embedded segments.
    """
    rules = DEFAULT_RULES if rules is None else rules
    groups = _group_by_category(rules, language)
    findings: list[Finding] = []

    for idx, line in enumerate(lines):
        lineno = first_line + idx
        for category, cat_rules in groups:
            for rule in cat_rules:
                if rule.pattern.search(line):
                    findings.append(
                        category.finding(
                            FindingSource.PATTERN,
                            location=file_path,
                            line=lineno,
                            evidence=line.strip()[:EVIDENCE_MAX],
                        )
                    )
                    break

        if len(line) > LONG_LINE_THRESHOLD and not any(m in line for m in _COMMENT_MARKERS):
            findings.append(
                RiskCategory.SUSPICIOUS_LONG_LINE.finding(
                    FindingSource.PATTERN,
                    location=file_path,
                    line=lineno,
                    evidence=f"{len(line)} characters",
                )
            )

    return findings


def match_text(
    text: str,
    file_path: str,
    language: SourceLanguage,
    rules: Sequence[Rule] | None = None,
    *,
    first_line: int = 1,
) -> list[Finding]:
    """Convenience wrapper splitting *text* into lines."""
    return match_lines(text.split("\n"), file_path, language, rules, first_line=first_line)
