"""Tests for skill discovery and SKILL.md parsing."""

import textwrap

from clawshield.discovery import (
    discover_skills,
    extract_description,
    list_skill_files,
    load_skill,
    parse_front_matter,
    skill_for_path,
)
from clawshield.models import skill_id_for

MANIFEST = textwrap.dedent("""\
    ---
    name: weather
    entry: main.py
    ---
    # Weather

    Looks up the forecast
    for a city.

    More detail.
""")


class TestFrontMatter:
    def test_parsed(self):
        meta, body = parse_front_matter(MANIFEST)
        assert meta == {"name": "weather", "entry": "main.py"}
        assert body.startswith("# Weather")

    def test_invalid_yaml(self):
        meta, body = parse_front_matter("---\nname: [oops\n---\nbody\n")
        assert meta == {}
        assert body == "body\n"

    def test_description(self):
        _, body = parse_front_matter(MANIFEST)
        assert extract_description(body) == "Looks up the forecast for a city."
        assert extract_description("# Only a title\n") == "No description available"
        assert len(extract_description("x" * 500)) == 200


class TestLoadSkill:
    def test_with_manifest(self, make_skill):
        root = make_skill({"SKILL.md": MANIFEST, "main.py": "print('hi')\n"}, name="wx")
        skill = load_skill(root)
        assert skill.name == "weather"
        assert skill.id == skill_id_for(root)
        assert skill.description == "Looks up the forecast for a city."
        assert skill.metadata["entry"] == "main.py"

    def test_without_manifest(self, make_skill):
        root = make_skill({"main.py": ""}, name="bare")
        assert load_skill(root) is None
        skill = skill_for_path(root)
        assert skill.name == "bare"
        assert skill.id == skill_id_for(root)


class TestDiscover:
    def test_managed_then_workspace(self, tmp_path, make_skill):
        make_skill({"SKILL.md": "# a\n"}, name="openclaw/skills/alpha")
        make_skill({"README.md": ""}, name="openclaw/skills/not-a-skill")
        make_skill({"SKILL.md": "# b\n"}, name="ws/skills/beta")
        skills = discover_skills(tmp_path / "openclaw", [str(tmp_path / "ws"), str(tmp_path / "missing")])
        assert [(s.name, s.source) for s in skills] == [("alpha", "managed"), ("beta", "workspace")]


class TestListSkillFiles:
    def test_filters(self, make_skill):
        root = make_skill({
            "SKILL.md": "# s\n",
            "main.py": "",
            "lib/util.js": "",
            "docs/README.md": "",
            "node_modules/dep/index.js": "",
            "notes.txt": "",
            "big.py": "x" * 2048,
        })
        files = [p.relative_to(root).as_posix() for p in list_skill_files(root, max_file_size_kb=1)]
        assert files == ["SKILL.md", "lib/util.js", "main.py"]

    def test_missing_dir(self, tmp_path):
        assert list_skill_files(tmp_path / "nope") == []
