"""Declarative rule loader: loads pattern rules from YAML rulesets.

A **ruleset** is a folder containing ``*.yml`` / ``*.yaml`` files, each
defining a list of line-oriented pattern rules.

Built-in rulesets ship under ``clawshield/rulesets/<name>/``.  The
``default`` ruleset is used unless other rulesets are named explicitly.

YAML format per rule:
    - id: SHELL_PY_SUBPROCESS
      category: shell_execution          # a RiskCategory value
      languages: [python]                # javascript | python | shell | all
      pattern: 'subprocess\\.'
      flags: IGNORECASE                  # optional, default: none
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from clawshield.scanner.categories import RiskCategory, SourceLanguage

logger = logging.getLogger(__name__)

ALL_LANGUAGES = "all"

# ---------------------------------------------------------------------------
# Data class
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rule:
    """A single pattern rule bound to one category."""

    id: str
    category: RiskCategory
    languages: frozenset[str]
    pattern: re.Pattern[str]

    @property
    def any_language(self) -> bool:
        return ALL_LANGUAGES in self.languages

    def applies_to(self, language: SourceLanguage) -> bool:
        return self.any_language or language.value in self.languages


# ---------------------------------------------------------------------------
# Flag parser
# ---------------------------------------------------------------------------

_FLAG_MAP = {
    "IGNORECASE": re.IGNORECASE,
    "MULTILINE": re.MULTILINE,
    "DOTALL": re.DOTALL,
    "VERBOSE": re.VERBOSE,
}


def _parse_flags(flag_str: str | None) -> int:
    """Parse a ``|``-separated flag string like ``IGNORECASE|MULTILINE``."""
    if not flag_str:
        return 0
    result = 0
    for name in flag_str.split("|"):
        result |= _FLAG_MAP.get(name.strip().upper(), 0)
    return result


def _parse_languages(raw: object, category: RiskCategory) -> frozenset[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not raw:
        raise ValueError("languages must be a non-empty list")
    names = {str(v).lower() for v in raw}
    if ALL_LANGUAGES in names:
        return frozenset({ALL_LANGUAGES})
    langs = {SourceLanguage(n) for n in names}
    if not all(category.applies_to(lang) for lang in langs):
        raise ValueError(f"category {category.value} does not apply to {sorted(names)}")
    return frozenset(lang.value for lang in langs)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _load_rules_from_file(path: Path) -> list[Rule]:
    """Load rules from a single YAML file."""
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Skipping ruleset file %s: %s", path, exc)
        return []
    if not isinstance(raw, list):
        return []

    rules: list[Rule] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            category = RiskCategory(entry["category"])
            rules.append(
                Rule(
                    id=str(entry["id"]),
                    category=category,
                    languages=_parse_languages(entry.get("languages"), category),
                    pattern=re.compile(entry["pattern"], _parse_flags(entry.get("flags"))),
                )
            )
        except (KeyError, TypeError, re.error, ValueError) as exc:
            logger.debug("Skipping malformed rule in %s: %s", path, exc)
            continue
    return rules


def load_ruleset(ruleset_dir: str | Path) -> list[Rule]:
    """Load all rules from ``*.yml`` / ``*.yaml`` files in a ruleset folder."""
    p = Path(ruleset_dir)
    if not p.is_dir():
        return []
    rules: list[Rule] = []
    for path in sorted([*p.glob("*.yml"), *p.glob("*.yaml")]):
        rules.extend(_load_rules_from_file(path))
    return rules


# ---------------------------------------------------------------------------
# Built-in rulesets
# ---------------------------------------------------------------------------

_RULESETS_DIR = Path(__file__).resolve().parent.parent / "rulesets"


def list_builtin_rulesets() -> list[str]:
    """Return names of built-in rulesets (subdirectories of rulesets/)."""
    if not _RULESETS_DIR.is_dir():
        return []
    return sorted(
        d.name for d in _RULESETS_DIR.iterdir() if d.is_dir() and not d.name.startswith(".")
    )


def load_builtin_ruleset(name: str = "default") -> list[Rule]:
    """Load a built-in ruleset by name."""
    return load_ruleset(_RULESETS_DIR / name)


def resolve_rules(rulesets: list[str] | None = None) -> list[Rule]:
    """Resolve rulesets into a flat list of rules.

    No rulesets → the built-in ``default``.  Otherwise only the named
    rulesets (paths or built-in names); list ``"default"`` explicitly to
    layer on top of it.  Later rulesets override duplicate rule ids.
    """
    effective = rulesets if rulesets else ["default"]

    rules_by_id: dict[str, Rule] = {}
    for rs in effective:
        rs_path = Path(rs)
        if rs_path.is_dir():
            loaded = load_ruleset(rs_path)
        elif (_RULESETS_DIR / rs).is_dir():
            loaded = load_builtin_ruleset(rs)
        else:
            logger.warning("Unknown ruleset %r ignored", rs)
            continue
        for rule in loaded:
            rules_by_id[rule.id] = rule

    return list(rules_by_id.values())


DEFAULT_RULES: list[Rule] = load_builtin_ruleset("default")
