"""SKILL.md segmentation: split Markdown into code and prose for scanning.

``markdown-it-py`` tokenises the document; fenced code blocks keep the
language named in their info string so the pattern matcher can apply the
right rule tables, while prose is only checked against language-neutral
rules.
"""

from __future__ import annotations

from dataclasses import dataclass

from markdown_it import MarkdownIt

from clawshield.scanner.categories import SourceLanguage, language_for_hint


@dataclass
class Segment:
    """A contiguous block of text extracted from a Markdown file."""

    content: str
    kind: str  # "code" | "prose"
    language: SourceLanguage = SourceLanguage.OTHER
    start_line: int = 1  # 1-indexed line in the original file


def split_front_matter(text: str) -> tuple[str | None, str, int]:
    """Return ``(front_matter, body, body_offset)`` for a ``---`` fenced header.

    *body_offset* is the number of lines consumed by the header so callers
    can keep line numbers aligned with the original file.
    """
    if not text.startswith("---"):
        return None, text, 0
    lines = text.split("\n")
    for idx in range(1, len(lines)):
        if lines[idx].strip() == "---":
            return "\n".join(lines[1:idx]), "\n".join(lines[idx + 1:]), idx + 1
    return None, text, 0


def parse_markdown(text: str) -> list[Segment]:
    """Parse *text* as Markdown and return typed segments.

    Token maps are 0-indexed ``[start, end)``; fenced content starts on
    the line after the opening fence.
    """
    tokens = MarkdownIt().parse(text)
    segments: list[Segment] = []

    for token in tokens:
        if token.type == "fence":
            start = (token.map[0] + 2) if token.map else 1
            segments.append(
                Segment(
                    content=token.content,
                    kind="code",
                    language=language_for_hint(token.info),
                    start_line=start,
                )
            )
        elif token.type == "code_block":
            start = (token.map[0] + 1) if token.map else 1
            segments.append(Segment(content=token.content, kind="code", start_line=start))
        elif token.type in ("inline", "html_block") and token.content:
            start = (token.map[0] + 1) if token.map else 1
            segments.append(Segment(content=token.content, kind="prose", start_line=start))

    return segments
