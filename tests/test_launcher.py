"""Tests for running skills under the runtime guard.

The end-to-end cases start a real interpreter with the generated
``sitecustomize`` so the guard is active before the skill's first line.
"""

from __future__ import annotations

import os
import sys
import textwrap

import pytest

from clawshield.exceptions import ClawShieldError
from clawshield.guard import audit, launcher
from clawshield.guard.config import AuditLevel, GuardSettings
from clawshield.models import DirectoryMode, DirectoryPermission, Policy, skill_id_for

# ---------------------------------------------------------------------------
# Entry resolution
# ---------------------------------------------------------------------------


class TestResolveEntry:
    def test_front_matter(self, make_skill):
        root = make_skill({"SKILL.md": "---\nentry: run.py\n---\n", "run.py": "", "main.py": ""})
        assert launcher.resolve_entry(root) == root / "run.py"

    def test_explicit_wins(self, make_skill):
        root = make_skill({"SKILL.md": "---\nentry: run.py\n---\n", "run.py": "", "other.py": ""})
        assert launcher.resolve_entry(root, "other.py") == root / "other.py"

    def test_fallback(self, make_skill):
        root = make_skill({"index.py": "", "skill.py": ""})
        assert launcher.resolve_entry(root) == root / "index.py"

    def test_none_found(self, make_skill):
        root = make_skill({"README.md": ""})
        with pytest.raises(ClawShieldError, match="Could not determine"):
            launcher.resolve_entry(root)

    def test_missing_file(self, make_skill):
        root = make_skill({"SKILL.md": "---\nmain: gone.py\n---\n"})
        with pytest.raises(ClawShieldError, match="not found"):
            launcher.resolve_entry(root)

    def test_non_python(self, make_skill):
        root = make_skill({"index.js": ""})
        with pytest.raises(ClawShieldError, match="Unsupported entry type"):
            launcher.resolve_entry(root, "index.js")


class TestBuildEnviron:
    def test_guard_dir_first(self, tmp_path):
        settings = GuardSettings(audit_path=str(tmp_path / "a.jsonl"))
        env = launcher.build_environ(settings, tmp_path / "g", base={"PYTHONPATH": "/existing"})
        parts = env["PYTHONPATH"].split(os.pathsep)
        assert parts[0] == str(tmp_path / "g")
        assert parts[-1] == "/existing"
        assert env["CLAWSHIELD_BLOCK_SHELL"] == "1"

    def test_guard_dir_written_and_removed(self, make_skill, monkeypatch):
        created = []
        original = launcher.write_guard_dir

        def _record():
            created.append(original())
            return created[-1]

        monkeypatch.setattr(launcher, "write_guard_dir", _record)
        root = make_skill({"main.py": "import sys\nsys.exit(4)\n"})
        code = launcher.run_skill(root, policy=Policy(block_secrets=False), python=sys.executable)
        assert code == 4
        assert created and not created[0].exists()


# ---------------------------------------------------------------------------
# Guarded subprocess
# ---------------------------------------------------------------------------

SHELL_SKILL = textwrap.dedent("""\
    import os
    import sys

    try:
        os.system("touch spawned.txt")
    except PermissionError as exc:
        print("denied:", exc)
        sys.exit(3)
""")

WRITE_SKILL = textwrap.dedent("""\
    import sys

    try:
        with open(sys.argv[1], "w") as fh:
            fh.write("data")
    except PermissionError:
        sys.exit(3)
""")


class TestGuardedRun:
    def test_shell_denied(self, make_skill, tmp_path):
        root = make_skill({"main.py": SHELL_SKILL})
        log = tmp_path / "audit.jsonl"
        code = launcher.run_skill(
            root, policy=Policy(block_shell=True, block_secrets=False), audit_path=log,
        )
        assert code == 3
        assert not (root / "spawned.txt").exists()

        entries = audit.read_recent_entries(log_path=log)
        assert [(e.action, e.result, e.details["kind"]) for e in entries] == [
            ("runtime", "blocked", "shell"),
        ]
        assert entries[0].skill_id == skill_id_for(root)

    def test_fs_write_denied_with_empty_allow_list(self, make_skill, tmp_path):
        root = make_skill({"main.py": WRITE_SKILL})
        target = tmp_path / "out" / "data.txt"
        target.parent.mkdir()
        log = tmp_path / "audit.jsonl"
        code = launcher.run_skill(
            root,
            policy=Policy(block_shell=False, block_secrets=False, block_fs_write=True),
            args=[str(target)],
            audit_path=log,
        )
        assert code == 3
        assert not target.exists()
        [entry] = audit.read_recent_entries(log_path=log)
        assert entry.result == "blocked"
        assert entry.details["kind"] == "fs_write"
        assert entry.details["target"] == str(target)

    def test_fs_write_allowed_path(self, make_skill, tmp_path):
        root = make_skill({"main.py": WRITE_SKILL})
        target = tmp_path / "out" / "data.txt"
        target.parent.mkdir()
        log = tmp_path / "audit.jsonl"
        policy = Policy(
            block_shell=False,
            block_secrets=False,
            block_fs_write=True,
            allowed_dirs=(DirectoryPermission(str(target), DirectoryMode.READWRITE),),
        )

        code = launcher.run_skill(root, policy=policy, args=[str(target)], audit_path=log)
        assert code == 0
        assert target.read_text() == "data"
        assert audit.read_recent_entries(log_path=log) == []

        code = launcher.run_skill(
            root, policy=policy, args=[str(target)], audit_path=log, audit_level=AuditLevel.ALL,
        )
        assert code == 0
        writes = [
            e for e in audit.read_recent_entries(log_path=log)
            if e.details.get("kind") == "fs_write"
        ]
        assert len(writes) == 1
        assert writes[0].result == "success"
        assert writes[0].details["target"] == str(target)

    def test_read_only_dir_is_not_writable(self, make_skill, tmp_path):
        root = make_skill({"main.py": WRITE_SKILL})
        target = tmp_path / "out" / "data.txt"
        target.parent.mkdir()
        policy = Policy(
            block_shell=False,
            block_secrets=False,
            block_fs_write=True,
            allowed_dirs=(DirectoryPermission(str(target.parent), DirectoryMode.READ),),
        )
        code = launcher.run_skill(root, policy=policy, args=[str(target)], audit_path=tmp_path / "a.jsonl")
        assert code == 3

    def test_secret_hidden_from_skill(self, make_skill, tmp_path, monkeypatch):
        monkeypatch.setenv("SUPER_SECRET_TOKEN", "hunter2")
        root = make_skill({"main.py": textwrap.dedent("""\
            import os
            import sys

            sys.exit(0 if os.environ.get("SUPER_SECRET_TOKEN") is None and os.getenv("PATH") else 5)
        """)})
        log = tmp_path / "audit.jsonl"
        code = launcher.run_skill(root, policy=Policy(block_shell=False, block_secrets=True), audit_path=log)
        assert code == 0
        keys = [e.details.get("key") for e in audit.read_recent_entries(log_path=log)]
        assert "SUPER_SECRET_TOKEN" in keys
