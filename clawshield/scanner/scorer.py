"""Risk scorer: reduce findings to a 0-100 score, recommendation and explanation.

Each category contributes its base weight once, plus a quarter of the weight
for each of up to three further occurrences::

    contribution = w + min(n - 1, 3) * w / 4

The sum is rounded half-up and clamped to ``[0, 100]``.  Grouping makes the
score independent of the order in which findings were discovered.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable

from clawshield.config import DEFAULT_THRESHOLDS, NATIVE_BINARY_BONUS, RiskThresholds
from clawshield.models import Finding, Recommendation, RiskScanResult, now_iso
from clawshield.scanner.categories import RiskCategory

UNKNOWN_CATEGORY_WEIGHT = 5
MAX_EXTRA_OCCURRENCES = 3
MAX_SCORE = 100

SAFE_MESSAGE = "No security risks detected. This skill appears safe to use."

_TIER_SENTENCES = {
    Recommendation.ALLOW: "Safe to use with standard precautions.",
    Recommendation.SANDBOX: "Review carefully before enabling. Consider running in a sandbox.",
    Recommendation.BLOCK: "High risk detected. Strongly recommend blocking or thorough manual review.",
}


def category_weight(category: str) -> int:
    """Base weight for a category wire name; unknown names weigh 5."""
    member = RiskCategory.lookup(category)
    if member is None:
        return UNKNOWN_CATEGORY_WEIGHT
    if member is RiskCategory.NATIVE_BINARY:
        return member.weight + NATIVE_BINARY_BONUS
    return member.weight


def category_contribution(category: str, count: int) -> float:
    if count <= 0:
        return 0.0
    weight = category_weight(category)
    return weight + min(count - 1, MAX_EXTRA_OCCURRENCES) * weight / 4


def score_findings(findings: Iterable[Finding]) -> int:
    counts = Counter(f.category for f in findings)
    total = sum(category_contribution(cat, n) for cat, n in counts.items())
    rounded = math.floor(total + 0.5)
    return max(0, min(MAX_SCORE, rounded))


def recommendation_for(score: int, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> Recommendation:
    if score <= thresholds.safe_max:
        return Recommendation.ALLOW
    if score <= thresholds.warning_max:
        return Recommendation.SANDBOX
    return Recommendation.BLOCK


def _summary(category: str) -> str:
    member = RiskCategory.lookup(category)
    return member.summary if member is not None else category


def explain(
    findings: Iterable[Finding],
    score: int,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> str:
    """One clause per category with its count, then the tier sentence.

    Categories appear in the order they are first met in the sorted
    finding list, so the text does not depend on discovery order.
    """
    ordered = sorted(findings, key=Finding.sort_key)
    if not ordered:
        return SAFE_MESSAGE

    counts: dict[str, int] = {}
    for f in ordered:
        counts[f.category] = counts.get(f.category, 0) + 1

    parts = [
        f"{_summary(cat)} ({n} occurrence{'s' if n > 1 else ''})"
        for cat, n in counts.items()
    ]
    tier = _TIER_SENTENCES[recommendation_for(score, thresholds)]
    return f"This skill {', '.join(parts)}. {tier}"


def build_result(
    findings: Iterable[Finding],
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RiskScanResult:
    """Score *findings* and assemble the immutable scan result."""
    ordered = tuple(sorted(findings, key=Finding.sort_key))
    score = score_findings(ordered)
    by_source = Counter(f.source.value for f in ordered)
    return RiskScanResult(
        score=score,
        findings=ordered,
        explanation=explain(ordered, score, thresholds),
        recommendation=recommendation_for(score, thresholds),
        scanned_at=now_iso(),
        counts_by_source=dict(by_source),
    )
