"""Discovery: find skills, parse their SKILL.md and list scannable files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from clawshield.models import Skill
from clawshield.scanner.categories import SCANNABLE_EXTENSIONS
from clawshield.scanner.md_parser import split_front_matter

logger = logging.getLogger(__name__)

SKILL_MANIFEST = "SKILL.md"

EXCLUDE_DIRS: set[str] = {
    ".git",
    "node_modules",
    "dist",
    "build",
    ".venv",
    "venv",
    "__pycache__",
}

_DESCRIPTION_MAX = 200
_NO_DESCRIPTION = "No description available"


# ---------------------------------------------------------------------------
# SKILL.md
# ---------------------------------------------------------------------------


def parse_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Return ``(front_matter, body)``; invalid YAML yields an empty mapping."""
    header, body, _ = split_front_matter(text)
    if header is None:
        return {}, text
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        logger.debug("Ignoring malformed SKILL.md front matter: %s", exc)
        return {}, body
    return (data if isinstance(data, dict) else {}), body


def read_skill_manifest(skill_path: str | Path) -> tuple[dict[str, Any], str]:
    """Front matter and body of ``<skill>/SKILL.md`` (empty if absent)."""
    manifest = Path(skill_path) / SKILL_MANIFEST
    if not manifest.is_file():
        return {}, ""
    try:
        text = manifest.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", manifest, exc)
        return {}, ""
    return parse_front_matter(text)


def extract_description(body: str) -> str:
    """First paragraph of text after any headings, capped at 200 chars."""
    description = ""
    found = False
    for line in body.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            if found:
                break
            continue
        found = True
        description += (" " if description else "") + stripped
        if len(description) > _DESCRIPTION_MAX:
            break
    return description[:_DESCRIPTION_MAX] or _NO_DESCRIPTION


def load_skill(skill_path: str | Path, source: str = "workspace") -> Skill | None:
    """Build a :class:`Skill` for a folder containing ``SKILL.md``."""
    path = Path(skill_path)
    if not (path / SKILL_MANIFEST).is_file():
        return None
    meta, body = read_skill_manifest(path)
    name = meta.get("name")
    description = meta.get("description")
    return Skill(
        path=str(path.resolve()),
        name=name if isinstance(name, str) and name else path.resolve().name,
        source=source,
        description=description if isinstance(description, str) and description
        else extract_description(body),
        metadata=meta,
    )


def skill_for_path(skill_path: str | Path) -> Skill:
    """A :class:`Skill` for any folder, with or without ``SKILL.md``."""
    return load_skill(skill_path) or Skill(path=str(Path(skill_path).resolve()))


# ---------------------------------------------------------------------------
# Skill roots
# ---------------------------------------------------------------------------


def _skills_in(directory: Path, source: str) -> list[Skill]:
    if not directory.is_dir():
        return []
    skills: list[Skill] = []
    try:
        children = sorted(p for p in directory.iterdir() if p.is_dir())
    except OSError as exc:
        logger.warning("Cannot list %s: %s", directory, exc)
        return []
    for child in children:
        skill = load_skill(child, source)
        if skill is not None:
            skills.append(skill)
    return skills


def discover_skills(
    openclaw_path: str | Path | None = None,
    workspace_paths: list[str] | None = None,
) -> list[Skill]:
    """Managed skills (``<openclaw>/skills``) then workspace skills."""
    root = Path(openclaw_path).expanduser() if openclaw_path else Path.home() / ".openclaw"
    skills = _skills_in(root / "skills", "managed")
    for ws in workspace_paths or []:
        skills.extend(_skills_in(Path(ws).expanduser() / "skills", "workspace"))
    return skills


# ---------------------------------------------------------------------------
# File enumeration
# ---------------------------------------------------------------------------


def list_skill_files(skill_path: str | Path, max_file_size_kb: int = 512) -> list[Path]:
    """Return scannable source files under *skill_path*, sorted.

    ``SKILL.md`` is included when present; dependency folders are pruned.
    """
    root = Path(skill_path)
    if not root.is_dir():
        return []

    max_bytes = max_file_size_kb * 1024
    collected: list[Path] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in EXCLUDE_DIRS]
        for fname in filenames:
            fpath = Path(dirpath) / fname
            is_manifest = fname == SKILL_MANIFEST and Path(dirpath) == root
            if not is_manifest and fpath.suffix.lower() not in SCANNABLE_EXTENSIONS:
                continue
            try:
                if fpath.stat().st_size > max_bytes:
                    logger.debug("Skipping oversized file %s", fpath)
                    continue
            except OSError:
                continue
            collected.append(fpath)

    collected.sort()
    return collected
