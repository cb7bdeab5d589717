"""Shared fixtures: isolate ClawShield state under a temporary home."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def clawshield_home(tmp_path, monkeypatch):
    """Point ``CLAWSHIELD_HOME`` at a per-test directory."""
    home = tmp_path / "clawshield-home"
    monkeypatch.setenv("CLAWSHIELD_HOME", str(home))
    return home


@pytest.fixture
def make_skill(tmp_path):
    """Create a skill folder from a ``{relative path: text}`` mapping."""

    def _make(files: dict[str, str], name: str = "skill"):
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            p = root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(text, encoding="utf-8")
        return root

    return _make
