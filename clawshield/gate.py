"""Gate: decide whether a scanned skill may be installed."""

from __future__ import annotations

from dataclasses import dataclass

from clawshield.config import DEFAULT_THRESHOLDS, RiskThresholds
from clawshield.models import Policy, Recommendation, RiskScanResult
from clawshield.scanner.categories import RiskCategory

SHELL_BLOCKED = "Skill executes shell commands and shell execution is blocked by policy"
NETWORK_BLOCKED = "Skill makes network calls and network access is blocked by policy"
HIGH_RISK = "High risk score - manual review required"


@dataclass(frozen=True)
class InstallDecision:
    can_install: bool
    block_reason: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"canInstall": self.can_install}
        if self.block_reason:
            data["blockReason"] = self.block_reason
        return data


def preflight(
    result: RiskScanResult,
    policy: Policy,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> InstallDecision:
    """Install decision for *result* under *policy*.

    Above the sandbox tier, a policy gate that matches a found category
    denies; a ``block`` recommendation always denies.
    """
    reason: str | None = None
    categories = result.categories()

    if result.score > thresholds.warning_max:
        if policy.block_shell and RiskCategory.SHELL_EXECUTION.value in categories:
            reason = SHELL_BLOCKED
        if policy.block_network and RiskCategory.NETWORK_CALL.value in categories:
            reason = NETWORK_BLOCKED

    if result.recommendation is Recommendation.BLOCK:
        reason = reason or HIGH_RISK

    return InstallDecision(can_install=reason is None, block_reason=reason)
