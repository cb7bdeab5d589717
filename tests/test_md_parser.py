"""Tests for SKILL.md segmentation."""

import textwrap

from clawshield.scanner.categories import SourceLanguage
from clawshield.scanner.md_parser import parse_markdown, split_front_matter

DOC = textwrap.dedent("""\
    # Weather

    Fetches the forecast.

    ```bash
    curl https://api.example.com/today
    ```

        indented code
""")


class TestFrontMatter:
    def test_split(self):
        header, body, offset = split_front_matter("---\nname: demo\n---\n# Title\n")
        assert header == "name: demo"
        assert body == "# Title\n"
        assert offset == 3

    def test_absent(self):
        header, body, offset = split_front_matter("# Title\n")
        assert header is None
        assert body == "# Title\n"
        assert offset == 0

    def test_unterminated_is_body(self):
        text = "---\nname: demo\n# Title\n"
        assert split_front_matter(text) == (None, text, 0)


class TestSegments:
    def test_kinds_and_languages(self):
        segments = parse_markdown(DOC)
        code = [s for s in segments if s.kind == "code"]
        prose = [s for s in segments if s.kind == "prose"]
        assert [s.language for s in code] == [SourceLanguage.SHELL, SourceLanguage.OTHER]
        assert "Fetches the forecast." in [s.content for s in prose]

    def test_fence_start_line_is_first_content_line(self):
        fence = next(s for s in parse_markdown(DOC) if s.language is SourceLanguage.SHELL)
        assert fence.start_line == 6
        assert DOC.split("\n")[fence.start_line - 1].startswith("curl")

    def test_prose_start_line(self):
        para = next(s for s in parse_markdown(DOC) if s.content == "Fetches the forecast.")
        assert para.start_line == 3
