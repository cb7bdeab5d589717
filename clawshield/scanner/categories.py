"""Risk categories and source-language variants.

Every detector reports one of the :class:`RiskCategory` members; each
member carries its default severity, its base scoring weight, the phrase
used in scan explanations and the source languages its pattern rules apply
to.
"""

from __future__ import annotations

import enum
from pathlib import PurePath

from clawshield.models import Finding, FindingSource, Severity

# ---------------------------------------------------------------------------
# Source languages
# ---------------------------------------------------------------------------


class SourceLanguage(str, enum.Enum):
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    SHELL = "shell"
    OTHER = "other"


_EXTENSIONS: dict[str, SourceLanguage] = {
    ".js": SourceLanguage.JAVASCRIPT,
    ".ts": SourceLanguage.JAVASCRIPT,
    ".jsx": SourceLanguage.JAVASCRIPT,
    ".tsx": SourceLanguage.JAVASCRIPT,
    ".mjs": SourceLanguage.JAVASCRIPT,
    ".cjs": SourceLanguage.JAVASCRIPT,
    ".py": SourceLanguage.PYTHON,
    ".pyw": SourceLanguage.PYTHON,
    ".sh": SourceLanguage.SHELL,
    ".bash": SourceLanguage.SHELL,
    ".zsh": SourceLanguage.SHELL,
    ".ps1": SourceLanguage.SHELL,
}

# Info strings seen on fenced code blocks in SKILL.md.
_FENCE_HINTS: dict[str, SourceLanguage] = {
    "js": SourceLanguage.JAVASCRIPT,
    "javascript": SourceLanguage.JAVASCRIPT,
    "ts": SourceLanguage.JAVASCRIPT,
    "typescript": SourceLanguage.JAVASCRIPT,
    "node": SourceLanguage.JAVASCRIPT,
    "py": SourceLanguage.PYTHON,
    "python": SourceLanguage.PYTHON,
    "python3": SourceLanguage.PYTHON,
    "sh": SourceLanguage.SHELL,
    "bash": SourceLanguage.SHELL,
    "shell": SourceLanguage.SHELL,
    "zsh": SourceLanguage.SHELL,
    "console": SourceLanguage.SHELL,
    "powershell": SourceLanguage.SHELL,
    "ps1": SourceLanguage.SHELL,
}

SCANNABLE_EXTENSIONS: frozenset[str] = frozenset(_EXTENSIONS)


def language_for(path: str | PurePath) -> SourceLanguage:
    """Classify a file by extension."""
    return _EXTENSIONS.get(PurePath(path).suffix.lower(), SourceLanguage.OTHER)


def language_for_hint(hint: str | None) -> SourceLanguage:
    """Classify a fenced code block by its info string (``bash``, ``py`` …)."""
    if not hint:
        return SourceLanguage.OTHER
    word = hint.strip().split()[0].lower() if hint.strip() else ""
    return _FENCE_HINTS.get(word, SourceLanguage.OTHER)


# ---------------------------------------------------------------------------
# Risk categories
# ---------------------------------------------------------------------------

_CODE = frozenset({SourceLanguage.JAVASCRIPT, SourceLanguage.PYTHON, SourceLanguage.SHELL})
_ANY = frozenset(SourceLanguage)


class RiskCategory(str, enum.Enum):
    """Closed set of risk categories.

    Member value is the wire name used in findings and audit records.
    """

    SHELL_EXECUTION = (
        "shell_execution", Severity.HIGH, 25,
        "Executes shell commands", "executes shell commands", _CODE,
    )
    REMOTE_SCRIPT_EXEC = (
        "remote_script_exec", Severity.CRITICAL, 30,
        "Downloads and executes remote scripts",
        "downloads and executes remote scripts", _ANY,
    )
    OBFUSCATION = (
        "obfuscation", Severity.HIGH, 25,
        "Uses code obfuscation or dynamic execution", "uses code obfuscation",
        frozenset({SourceLanguage.JAVASCRIPT, SourceLanguage.PYTHON}),
    )
    CREDENTIAL_ACCESS = (
        "credential_access", Severity.MEDIUM, 20,
        "Accesses environment variables or credentials",
        "accesses credentials/environment variables", _ANY,
    )
    NETWORK_CALL = (
        "network_call", Severity.MEDIUM, 20,
        "Makes network requests", "makes network requests", _CODE,
    )
    FILESYSTEM_DELETE = (
        "filesystem_delete", Severity.HIGH, 20,
        "Deletes files or directories", "deletes files or directories",
        frozenset({SourceLanguage.JAVASCRIPT, SourceLanguage.PYTHON}),
    )
    FILESYSTEM_WRITE = (
        "filesystem_write", Severity.MEDIUM, 15,
        "Writes to filesystem", "writes to the filesystem",
        frozenset({SourceLanguage.JAVASCRIPT, SourceLanguage.PYTHON}),
    )
    DEPENDENCY_SCRIPT = (
        "dependency_script", Severity.HIGH, 20,
        "Install script executes shell commands", "runs install scripts", _ANY,
    )
    DEPENDENCY_URL = (
        "dependency_url", Severity.MEDIUM, 20,
        "Dependency uses non-registry source", "uses non-registry dependencies", _ANY,
    )
    DEPENDENCY_INDEX = (
        "dependency_index", Severity.MEDIUM, 20,
        "Custom package index in requirements", "uses custom package indexes", _ANY,
    )
    DEPENDENCY_UNPINNED = (
        "dependency_unpinned", Severity.LOW, 10,
        "Unpinned dependency version", "uses unpinned dependencies", _ANY,
    )
    NATIVE_BINARY = (
        "native_binary", Severity.HIGH, 20,
        "Skill bundles native binary", "bundles native binaries", _ANY,
    )
    SUSPICIOUS_LONG_LINE = (
        "suspicious_long_line", Severity.MEDIUM, 10,
        "Contains suspiciously long line (potential obfuscation)",
        "contains suspiciously long lines", _ANY,
    )
    DYNAMIC_REQUIRE = (
        "dynamic_require", Severity.MEDIUM, 10,
        "Uses dynamic require", "uses dynamic require",
        frozenset({SourceLanguage.JAVASCRIPT}),
    )
    DYNAMIC_IMPORT = (
        "dynamic_import", Severity.MEDIUM, 10,
        "Uses dynamic import", "uses dynamic import",
        frozenset({SourceLanguage.JAVASCRIPT, SourceLanguage.PYTHON}),
    )
    SENSITIVE_IMPORT = (
        "sensitive_import", Severity.LOW, 5,
        "Imports sensitive module", "imports sensitive modules",
        frozenset({SourceLanguage.JAVASCRIPT, SourceLanguage.PYTHON}),
    )
    RUNTIME_BLOCKED = (
        "runtime_blocked", Severity.MEDIUM, 15,
        "Runtime guard blocked action", "was blocked by runtime guard", _ANY,
    )

    def __new__(
        cls,
        value: str,
        severity: Severity,
        weight: int,
        description: str,
        summary: str,
        languages: frozenset[SourceLanguage],
    ) -> RiskCategory:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.severity = severity
        obj.weight = weight
        obj.description = description
        obj.summary = summary
        obj.languages = languages
        return obj

    def __str__(self) -> str:
        return self.value

    @classmethod
    def lookup(cls, name: str) -> RiskCategory | None:
        try:
            return cls(name)
        except ValueError:
            return None

    def applies_to(self, language: SourceLanguage) -> bool:
        return language in self.languages

    def finding(
        self,
        source: FindingSource,
        *,
        location: str | None = None,
        line: int | None = None,
        evidence: str | None = None,
        severity: Severity | None = None,
        description: str | None = None,
    ) -> Finding:
        """Build a :class:`Finding` for this category with its defaults."""
        return Finding(
            category=self.value,
            severity=severity if severity is not None else self.severity,
            description=description or self.description,
            source=source,
            location=location,
            line=line,
            evidence=evidence,
        )
