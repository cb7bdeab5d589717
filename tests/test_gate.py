"""Tests for the install gate."""

import pytest

from clawshield.gate import HIGH_RISK, NETWORK_BLOCKED, SHELL_BLOCKED, InstallDecision, preflight
from clawshield.models import FindingSource, Policy
from clawshield.scanner.categories import RiskCategory
from clawshield.scanner.scorer import build_result


def _result(*categories):
    return build_result([c.finding(FindingSource.PATTERN, location="a.py", line=1) for c in categories])


@pytest.fixture
def risky_shell():
    # 25 + 30 + 25 = 80: block tier
    return _result(
        RiskCategory.SHELL_EXECUTION,
        RiskCategory.REMOTE_SCRIPT_EXEC,
        RiskCategory.OBFUSCATION,
    )


@pytest.fixture
def risky_network():
    # 20 + 30 + 25 = 75: block tier
    return _result(
        RiskCategory.NETWORK_CALL,
        RiskCategory.REMOTE_SCRIPT_EXEC,
        RiskCategory.OBFUSCATION,
    )


class TestPreflight:
    def test_clean_skill_installs(self):
        decision = preflight(_result(), Policy())
        assert decision == InstallDecision(can_install=True)

    def test_sandbox_tier_installs(self):
        result = _result(RiskCategory.SHELL_EXECUTION, RiskCategory.NETWORK_CALL)
        assert result.score == 45
        assert preflight(result, Policy(block_network=True)).can_install

    def test_shell_gate(self, risky_shell):
        decision = preflight(risky_shell, Policy(block_shell=True))
        assert not decision.can_install
        assert decision.block_reason == SHELL_BLOCKED

    def test_high_risk_without_matching_gate(self, risky_shell):
        decision = preflight(risky_shell, Policy(block_shell=False))
        assert not decision.can_install
        assert decision.block_reason == HIGH_RISK

    def test_network_gate(self, risky_network):
        decision = preflight(risky_network, Policy(block_network=True))
        assert decision.block_reason == NETWORK_BLOCKED

    def test_network_gate_wins_over_shell(self):
        result = _result(
            RiskCategory.SHELL_EXECUTION,
            RiskCategory.NETWORK_CALL,
            RiskCategory.REMOTE_SCRIPT_EXEC,
        )
        decision = preflight(result, Policy(block_shell=True, block_network=True))
        assert decision.block_reason == NETWORK_BLOCKED

    def test_to_dict(self, risky_shell):
        assert preflight(_result(), Policy()).to_dict() == {"canInstall": True}
        assert preflight(risky_shell, Policy()).to_dict() == {
            "canInstall": False,
            "blockReason": SHELL_BLOCKED,
        }
