"""Tests for the policy engine and persisted policy manager."""

import pytest

from clawshield.config import load_config
from clawshield.exceptions import PolicyError
from clawshield.guard import audit
from clawshield.models import DirectoryMode, DirectoryPermission, Policy
from clawshield.policy import (
    ENV,
    FS_READ,
    FS_WRITE,
    NETWORK,
    SHELL,
    PolicyEngine,
    PolicyManager,
    domain_matches,
    host_of,
    path_within,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestPathWithin:
    def test_descendant(self):
        assert path_within("/ws/skills/foo/data.txt", "/ws/skills/foo")

    def test_sibling_prefix_is_not_inside(self):
        assert not path_within("/ws/skills/foobar/x", "/ws/skills/foo")

    def test_equal_and_normalised(self):
        assert path_within("/ws/skills/foo/", "/ws/skills/foo")
        assert path_within("/ws/skills/foo/../foo/a", "/ws/skills/foo")
        assert not path_within("/ws/skills/foo/../bar", "/ws/skills/foo")

    def test_symlink_escape_is_outside(self, tmp_path):
        allowed = tmp_path / "allowed"
        outside = tmp_path / "outside"
        allowed.mkdir()
        outside.mkdir()
        (allowed / "link").symlink_to(outside, target_is_directory=True)
        assert not path_within(str(allowed / "link" / "x.txt"), str(allowed))
        assert path_within(str(allowed / "link" / "x.txt"), str(outside))

    def test_symlinked_base(self, tmp_path):
        real = tmp_path / "real"
        real.mkdir()
        (tmp_path / "alias").symlink_to(real, target_is_directory=True)
        assert path_within(str(real / "a.txt"), str(tmp_path / "alias"))


class TestDomains:
    def test_host_of(self):
        assert host_of("API.Example.com:443") == "api.example.com"
        assert host_of("[::1]:8080") == "::1"
        assert host_of("example.com.") == "example.com"

    def test_subdomain(self):
        assert domain_matches("api.example.com", "example.com")
        assert domain_matches("example.com", "example.com")

    def test_suffix_without_dot_is_not_subdomain(self):
        assert not domain_matches("evilexample.com", "example.com")

    def test_empty(self):
        assert not domain_matches("", "example.com")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestPolicyEngine:
    def test_defaults(self):
        engine = PolicyEngine()
        assert not engine.is_operation_allowed(SHELL, "ls")
        assert engine.is_operation_allowed(NETWORK, "example.com")
        assert engine.is_operation_allowed(FS_WRITE, "/tmp/x")
        assert engine.is_operation_allowed(FS_READ, "/etc/passwd")
        assert not engine.is_operation_allowed(ENV, "API_KEY")

    def test_unknown_kind_denied(self):
        assert not PolicyEngine(Policy(block_shell=False)).is_operation_allowed("teleport", "x")

    def test_network_allow_list(self):
        engine = PolicyEngine(Policy(block_network=True, allowed_domains=("example.com",)))
        assert engine.is_operation_allowed(NETWORK, "api.example.com")
        assert not engine.is_operation_allowed(NETWORK, "evilexample.com")
        assert not engine.is_operation_allowed(NETWORK, None)

    def test_fs_write_needs_readwrite(self):
        engine = PolicyEngine(Policy(
            block_fs_write=True,
            allowed_dirs=(
                DirectoryPermission("/ws/skills/foo", DirectoryMode.READWRITE),
                DirectoryPermission("/ws/shared", DirectoryMode.READ),
            ),
        ))
        assert engine.is_operation_allowed(FS_WRITE, "/ws/skills/foo/data.txt")
        assert not engine.is_operation_allowed(FS_WRITE, "/ws/skills/foobar/x")
        assert not engine.is_operation_allowed(FS_WRITE, "/ws/shared/a")
        assert engine.is_path_allowed("/ws/shared/a", write=False)

    def test_update_replaces_fields(self):
        engine = PolicyEngine()
        before = engine.policy
        after = engine.update(block_shell=False)
        assert after.block_shell is False
        assert before.block_shell is True
        assert engine.is_operation_allowed(SHELL, "ls")

    def test_update_unknown_field(self):
        with pytest.raises(PolicyError):
            PolicyEngine().update(block_everything=True)

    def test_allow_list_edits(self):
        engine = PolicyEngine()
        engine.add_allowed_dir("/data")
        engine.add_allowed_dir("/data", "readwrite")
        assert engine.policy.allowed_dirs == (DirectoryPermission("/data", DirectoryMode.READWRITE),)
        engine.remove_allowed_dir("/data")
        assert engine.policy.allowed_dirs == ()

        engine.add_allowed_domain("example.com")
        engine.add_allowed_domain("example.com")
        assert engine.policy.allowed_domains == ("example.com",)
        engine.remove_allowed_domain("example.com")
        assert engine.policy.allowed_domains == ()


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class TestPolicyManager:
    @pytest.fixture
    def paths(self, tmp_path):
        return tmp_path / "config.json", tmp_path / "audit.jsonl"

    def test_changes_persist_and_are_audited(self, paths):
        config_path, audit_path = paths
        manager = PolicyManager(config_path, audit_path)
        manager.update_policy(block_network=True)
        manager.add_allowed_domain("api.example.com")

        reloaded = load_config(config_path).default_policy
        assert reloaded.block_network is True
        assert reloaded.allowed_domains == ("api.example.com",)

        entries = audit.read_recent_entries(log_path=audit_path)
        assert [e.action for e in entries] == ["policy_change", "policy_change"]
        assert entries[0].details == {"addAllowedDomain": "api.example.com"}
        assert entries[1].details == {"block_network": True}

    def test_allowed_dir_mode_recorded(self, paths):
        config_path, audit_path = paths
        PolicyManager(config_path, audit_path).add_allowed_dir("/out", DirectoryMode.READWRITE)
        assert PolicyManager(config_path, audit_path).policy.allowed_dirs == (
            DirectoryPermission("/out", DirectoryMode.READWRITE),
        )

    def test_skill_toggle(self, paths):
        config_path, audit_path = paths
        manager = PolicyManager(config_path, audit_path)
        manager.set_skill_enabled("abc", "demo", False)
        assert not PolicyManager(config_path, audit_path).is_skill_enabled("abc")
        manager.set_skill_enabled("abc", "demo", True)
        assert PolicyManager(config_path, audit_path).is_skill_enabled("abc")
        actions = [e.action for e in audit.read_recent_entries(log_path=audit_path)]
        assert actions == ["enable", "disable"]

    def test_workspace_paths(self, paths):
        config_path, audit_path = paths
        manager = PolicyManager(config_path, audit_path)
        manager.add_workspace_path("/ws")
        manager.add_workspace_path("/ws")
        assert load_config(config_path).workspace_paths == ["/ws"]
        manager.remove_workspace_path("/ws")
        assert load_config(config_path).workspace_paths == []
