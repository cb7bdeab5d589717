"""Supply-chain auditor: dependency manifests, lockfiles and bundled binaries.

Only files at the skill root are treated as manifests; native binaries are
searched for across the whole tree.
"""

from __future__ import annotations

import json
import logging
import os
import re
from itertools import islice
from pathlib import Path

from clawshield.config import LOCKFILE_MAX_LINES
from clawshield.models import Finding, FindingSource
from clawshield.scanner.categories import RiskCategory

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

INSTALL_SCRIPT_KEYS = ("preinstall", "install", "postinstall", "prepare", "prepublish", "prepack")
_RISKY_SCRIPT = re.compile(
    r"(curl|wget|bash|sh|powershell|invoke-webrequest|chmod\s+\+x|node\s+-e|python\s+-c|perl\s+-e)",
    re.IGNORECASE,
)
_DEPENDENCY_GROUPS = ("dependencies", "devDependencies", "optionalDependencies", "peerDependencies")
_UNPINNED_SPECS = frozenset({"*", "latest"})
_NON_REGISTRY_SPEC = re.compile(
    r"^(git\+|github:|git@|https?:|file:|link:|workspace:|path:)", re.IGNORECASE
)

LOCKFILES = ("package-lock.json", "npm-shrinkwrap.json", "pnpm-lock.yaml", "yarn.lock")
_LOCK_CANDIDATE = re.compile(r"resolved", re.IGNORECASE)
_LOCK_URL = re.compile(r"https?://")
_LOCK_NON_REGISTRY = re.compile(
    r"git\+|github:|git@|file:|https?://(?!registry\.npmjs\.org)", re.IGNORECASE
)

_REQ_URL = re.compile(r"git\+|https?://", re.IGNORECASE)
_REQ_EDITABLE = re.compile(r"\s-e\s+|--editable", re.IGNORECASE)
_REQ_INDEX = re.compile(
    r"--index-url|--extra-index-url|--trusted-host|--find-links", re.IGNORECASE
)
_REQ_NAME = re.compile(r"^[A-Za-z0-9_.-]+")

TEXT_MANIFESTS = ("pyproject.toml", "Pipfile", "Pipfile.lock", "poetry.lock", "setup.py", "setup.cfg")
_TEXT_MANIFEST_SOURCE = re.compile(r"git\s*=\s*|url\s*=\s*|path\s*=\s*|https?://", re.IGNORECASE)

NATIVE_BINARY_SUFFIXES = frozenset({".node", ".so", ".dylib", ".dll", ".pyd"})
_BINARY_IGNORE_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv", "venv"})

_SCRIPT_EVIDENCE_MAX = 120
_LINE_EVIDENCE_MAX = 140


class _Collector:
    """Accumulate findings, dropping repeats of (category, location, evidence)."""

    def __init__(self) -> None:
        self.findings: list[Finding] = []
        self._seen: set[tuple[str, str, str]] = set()

    def add(
        self,
        category: RiskCategory,
        description: str,
        location: Path,
        evidence: str | None = None,
        line: int | None = None,
    ) -> None:
        key = (category.value, str(location), evidence or "")
        if key in self._seen:
            return
        self._seen.add(key)
        self.findings.append(
            category.finding(
                FindingSource.DEPENDENCY,
                location=str(location),
                line=line,
                evidence=evidence,
                description=description,
            )
        )


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def _check_package_json(path: Path, out: _Collector) -> None:
    try:
        pkg = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.debug("Skipping malformed manifest %s: %s", path, exc)
        return
    if not isinstance(pkg, dict):
        return

    scripts = pkg.get("scripts")
    if isinstance(scripts, dict):
        for key in INSTALL_SCRIPT_KEYS:
            value = scripts.get(key)
            if isinstance(value, str) and _RISKY_SCRIPT.search(value):
                out.add(
                    RiskCategory.DEPENDENCY_SCRIPT,
                    f'Install script "{key}" executes shell commands',
                    path,
                    value[:_SCRIPT_EVIDENCE_MAX],
                )

    for group in _DEPENDENCY_GROUPS:
        deps = pkg.get(group)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if not isinstance(spec, str):
                continue
            spec = spec.strip()
            if spec in _UNPINNED_SPECS:
                out.add(RiskCategory.DEPENDENCY_UNPINNED, "Unpinned dependency version", path, f"{name}@{spec}")
            if _NON_REGISTRY_SPEC.search(spec) or spec.startswith(".."):
                out.add(
                    RiskCategory.DEPENDENCY_URL,
                    "Dependency uses non-registry source",
                    path,
                    f"{name}@{spec}",
                )


def _check_lockfile(path: Path, out: _Collector) -> None:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for lineno, line in enumerate(islice(f, LOCKFILE_MAX_LINES), start=1):
                if not (_LOCK_CANDIDATE.search(line) or _LOCK_URL.search(line)):
                    continue
                if _LOCK_NON_REGISTRY.search(line):
                    out.add(
                        RiskCategory.DEPENDENCY_URL,
                        "Lockfile contains non-registry dependency source",
                        path,
                        line.strip()[:_LINE_EVIDENCE_MAX],
                        lineno,
                    )
    except OSError as exc:
        logger.debug("Cannot read lockfile %s: %s", path, exc)


def _check_requirements(path: Path, out: _Collector) -> None:
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").split("\n")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return

    for lineno, line in enumerate(lines, start=1):
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        evidence = entry[:_LINE_EVIDENCE_MAX]
        if _REQ_URL.search(entry):
            out.add(RiskCategory.DEPENDENCY_URL, "Requirements include URL/git dependency", path, evidence, lineno)
        if _REQ_EDITABLE.search(entry) or entry.startswith("-e "):
            out.add(RiskCategory.DEPENDENCY_URL, "Editable requirements entry", path, evidence, lineno)
        if _REQ_INDEX.search(entry):
            out.add(RiskCategory.DEPENDENCY_INDEX, "Custom package index in requirements", path, evidence, lineno)
        # Option lines ("-r", "--index-url" ...) are not requirements.
        if not entry.startswith("-") and "==" not in entry and _REQ_NAME.search(entry):
            out.add(RiskCategory.DEPENDENCY_UNPINNED, "Unpinned dependency version", path, evidence, lineno)


def _check_text_manifest(path: Path, out: _Collector) -> None:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return
    if _TEXT_MANIFEST_SOURCE.search(content):
        out.add(RiskCategory.DEPENDENCY_URL, "Manifest includes git/url/path dependency", path)


def find_native_binaries(root: Path) -> list[Path]:
    """Native extension / shared-library files under *root*, sorted."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _BINARY_IGNORE_DIRS)
        for name in sorted(filenames):
            if Path(name).suffix.lower() in NATIVE_BINARY_SUFFIXES:
                found.append(Path(dirpath) / name)
    return found


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def audit_dependencies(skill_path: str | Path) -> list[Finding]:
    """Inspect manifests, lockfiles and bundled binaries of one skill."""
    root = Path(skill_path)
    out = _Collector()

    package_json = root / "package.json"
    if package_json.is_file():
        _check_package_json(package_json, out)

    for name in LOCKFILES:
        if (root / name).is_file():
            _check_lockfile(root / name, out)

    requirements = root / "requirements.txt"
    if requirements.is_file():
        _check_requirements(requirements, out)

    for name in TEXT_MANIFESTS:
        if (root / name).is_file():
            _check_text_manifest(root / name, out)

    for binary in find_native_binaries(root):
        out.add(RiskCategory.NATIVE_BINARY, "Skill bundles native binary", binary)

    return out.findings
