"""Configuration: well-known paths, scoring thresholds and the policy file.

All state lives under ``~/.clawshield/`` (override with ``CLAWSHIELD_HOME``)::

    ~/.clawshield/config.json   default policy, workspaces, skill toggles
    ~/.clawshield/audit.jsonl   append-only audit trail

``config.json`` format::

    {
      "workspacePaths": ["/home/me/agent"],
      "defaultPolicy": {
        "allowedDirs": [{"path": "/home/me/agent/out", "mode": "readwrite"}],
        "allowedDomains": ["api.example.com"],
        "blockShell": true,
        "blockSecrets": true,
        "blockNetwork": false,
        "blockFsWrite": false
      },
      "enabledSkills": [],
      "disabledSkills": []
    }

A missing or corrupt file yields the compiled-in defaults; the next save
writes a valid file again.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from clawshield.models import Policy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
AUDIT_FILENAME = "audit.jsonl"
HOME_ENV_VAR = "CLAWSHIELD_HOME"


def clawshield_home() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".clawshield"


def default_config_path() -> Path:
    return clawshield_home() / CONFIG_FILENAME


def default_audit_path() -> Path:
    return clawshield_home() / AUDIT_FILENAME


# ---------------------------------------------------------------------------
# Scoring constants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskThresholds:
    """Upper bounds (inclusive) of the allow and sandbox tiers."""

    safe_max: int = 30
    warning_max: int = 60


DEFAULT_THRESHOLDS = RiskThresholds()

# Extra weight on top of the generic dependency weight for bundled
# native binaries.
NATIVE_BINARY_BONUS = 5

# Resource bounds for reads over untrusted or ever-growing files.
LOCKFILE_MAX_LINES = 20_000
BEHAVIOR_WINDOW_LINES = 2_000


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ClawShieldConfig:
    """Contents of ``config.json``."""

    default_policy: Policy = field(default_factory=Policy)
    workspace_paths: list[str] = field(default_factory=list)
    enabled_skills: list[str] = field(default_factory=list)
    disabled_skills: list[str] = field(default_factory=list)
    openclaw_path: str | None = None

    def is_skill_enabled(self, skill_id: str) -> bool:
        # Explicit disable wins; everything else is enabled by default.
        return skill_id not in self.disabled_skills

    def enable_skill(self, skill_id: str) -> None:
        self.disabled_skills = [s for s in self.disabled_skills if s != skill_id]
        if skill_id not in self.enabled_skills:
            self.enabled_skills.append(skill_id)

    def disable_skill(self, skill_id: str) -> None:
        self.enabled_skills = [s for s in self.enabled_skills if s != skill_id]
        if skill_id not in self.disabled_skills:
            self.disabled_skills.append(skill_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "workspacePaths": list(self.workspace_paths),
            "defaultPolicy": self.default_policy.to_dict(),
            "enabledSkills": list(self.enabled_skills),
            "disabledSkills": list(self.disabled_skills),
        }
        if self.openclaw_path:
            data["openclawPath"] = self.openclaw_path
        return data


# ---------------------------------------------------------------------------
# Public loaders
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> ClawShieldConfig:
    """Load ``config.json``, falling back to defaults on any problem."""
    path = Path(config_path).expanduser() if config_path else default_config_path()
    raw = _load_json(path)
    if raw is None:
        return ClawShieldConfig()

    openclaw = raw.get("openclawPath")
    return ClawShieldConfig(
        default_policy=Policy.from_dict(raw.get("defaultPolicy")),
        workspace_paths=_as_list(raw.get("workspacePaths")),
        enabled_skills=_as_list(raw.get("enabledSkills")),
        disabled_skills=_as_list(raw.get("disabledSkills")),
        openclaw_path=openclaw if isinstance(openclaw, str) else None,
    )


def save_config(cfg: ClawShieldConfig, config_path: str | Path | None = None) -> Path:
    """Write *cfg* to disk, creating the parent directory if needed."""
    path = Path(config_path).expanduser() if config_path else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(cfg.to_dict(), indent=2) + "\n", encoding="utf-8")
    os.replace(tmp, path)
    return path


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_json(path: Path) -> dict | None:
    """Load a JSON object, returning *None* on missing/invalid files."""
    if not path.is_file():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return None
    return raw if isinstance(raw, dict) else None


def _as_list(val: object) -> list[str]:
    """Coerce a value to a list of strings."""
    if isinstance(val, list):
        return [str(v) for v in val]
    if isinstance(val, str):
        return [val]
    return []
