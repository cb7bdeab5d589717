"""Tests for configuration loading and saving."""

import json

from clawshield import config
from clawshield.config import (
    ClawShieldConfig,
    default_audit_path,
    default_config_path,
    load_config,
    save_config,
)
from clawshield.models import Policy


class TestPaths:
    def test_fixture_home(self, clawshield_home):
        assert config.clawshield_home() == clawshield_home
        assert default_config_path() == clawshield_home / "config.json"

    def test_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLAWSHIELD_HOME", str(tmp_path / "state"))
        assert config.clawshield_home() == tmp_path / "state"
        assert default_audit_path() == tmp_path / "state" / "audit.jsonl"

    def test_falls_back_to_user_home(self, monkeypatch):
        monkeypatch.delenv("CLAWSHIELD_HOME")
        assert config.clawshield_home().name == ".clawshield"


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.json")
        assert cfg.default_policy == Policy()
        assert cfg.workspace_paths == []

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{ broken")
        assert load_config(path).default_policy == Policy()

    def test_non_object_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        assert load_config(path).default_policy == Policy()

    def test_partial_policy(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "workspacePaths": "/ws",
            "defaultPolicy": {"blockShell": False},
            "disabledSkills": ["abc"],
        }))
        cfg = load_config(path)
        assert cfg.workspace_paths == ["/ws"]
        assert cfg.default_policy.block_shell is False
        assert cfg.default_policy.block_secrets is True
        assert not cfg.is_skill_enabled("abc")
        assert cfg.is_skill_enabled("other")


class TestSaveConfig:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        cfg = ClawShieldConfig(
            default_policy=Policy(block_network=True, allowed_domains=("example.com",)),
            workspace_paths=["/ws"],
            openclaw_path="/opt/openclaw",
        )
        cfg.disable_skill("abc")
        save_config(cfg, path)
        loaded = load_config(path)
        assert loaded.default_policy == cfg.default_policy
        assert loaded.workspace_paths == ["/ws"]
        assert loaded.disabled_skills == ["abc"]
        assert loaded.openclaw_path == "/opt/openclaw"

    def test_default_location(self, clawshield_home):
        save_config(ClawShieldConfig())
        assert (clawshield_home / "config.json").is_file()
        assert not (clawshield_home / "config.json.tmp").exists()

    def test_enable_after_disable(self):
        cfg = ClawShieldConfig()
        cfg.disable_skill("abc")
        cfg.enable_skill("abc")
        assert cfg.is_skill_enabled("abc")
        assert cfg.enabled_skills == ["abc"]
        assert cfg.disabled_skills == []
