"""Launcher: run a skill's Python entry point under the runtime guard.

The guard is injected through a temporary ``sitecustomize.py`` placed first
on ``PYTHONPATH``; the interpreter imports it before the entry script runs.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

import clawshield
from clawshield.discovery import read_skill_manifest, skill_for_path
from clawshield.exceptions import ClawShieldError, SkillNotFoundError
from clawshield.guard.config import AuditLevel, GuardSettings
from clawshield.models import Policy

logger = logging.getLogger(__name__)

ENTRY_KEYS = ("entry", "main", "script")
FALLBACK_ENTRIES = ("main.py", "index.py", "skill.py")
PYTHON_BIN_ENV = "CLAWSHIELD_PYTHON_BIN"

SITECUSTOMIZE = """\
# Generated by clawshield; removed when the skill exits.
from clawshield.guard.interceptors import activate_from_env

activate_from_env()
"""


def resolve_entry(skill_path: str | Path, entry: str | None = None) -> Path:
    """Entry file: explicit *entry*, then SKILL.md front matter, then fallbacks."""
    root = Path(skill_path)
    if not entry:
        meta, _ = read_skill_manifest(root)
        for key in ENTRY_KEYS:
            if isinstance(meta.get(key), str) and meta[key]:
                entry = meta[key]
                break
    if not entry:
        for name in FALLBACK_ENTRIES:
            if (root / name).is_file():
                entry = name
                break
    if not entry:
        raise ClawShieldError(
            "Could not determine skill entry file. "
            "Provide --entry <file> or add entry/main to SKILL.md front matter."
        )

    path = Path(entry) if Path(entry).is_absolute() else root / entry
    if not path.is_file():
        raise ClawShieldError(f"Entry file not found: {path}")
    if path.suffix.lower() != ".py":
        raise ClawShieldError(
            f"Unsupported entry type: {path.suffix or path.name} (only Python entry points can be guarded)"
        )
    return path


def write_guard_dir() -> Path:
    """Create a temp dir holding the guard ``sitecustomize.py``."""
    guard_dir = Path(tempfile.mkdtemp(prefix="clawshield-guard-"))
    (guard_dir / "sitecustomize.py").write_text(SITECUSTOMIZE, encoding="utf-8")
    return guard_dir


def build_environ(settings: GuardSettings, guard_dir: Path, base: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env.update(settings.to_environ())
    # clawshield itself must be importable from the guarded interpreter.
    package_root = str(Path(clawshield.__file__).resolve().parent.parent)
    parts = [str(guard_dir), package_root]
    if env.get("PYTHONPATH"):
        parts.append(env["PYTHONPATH"])
    env["PYTHONPATH"] = os.pathsep.join(parts)
    return env


def run_skill(
    skill_path: str | Path,
    *,
    policy: Policy,
    entry: str | None = None,
    args: list[str] | tuple[str, ...] = (),
    audit_path: str | Path | None = None,
    audit_level: AuditLevel | str = AuditLevel.BLOCKED,
    python: str | None = None,
) -> int:
    """Run the skill's entry point guarded by *policy*; return its exit code.

    Only ``readwrite`` allowed dirs are handed to the guard.
    """
    root = Path(skill_path).resolve()
    if not root.is_dir():
        raise SkillNotFoundError(str(root))

    entry_path = resolve_entry(root, entry)
    skill = skill_for_path(root)
    settings = GuardSettings.from_policy(
        policy, skill=skill, audit_path=audit_path, audit_level=audit_level
    )

    interpreter = python or os.environ.get(PYTHON_BIN_ENV) or sys.executable
    guard_dir = write_guard_dir()
    try:
        env = build_environ(settings, guard_dir)
        logger.info("Running %s (%s) under guard", skill.name, entry_path.name)
        completed = subprocess.run(
            [interpreter, str(entry_path), *args],
            cwd=str(root),
            env=env,
            check=False,
        )
        return completed.returncode
    finally:
        shutil.rmtree(guard_dir, ignore_errors=True)
