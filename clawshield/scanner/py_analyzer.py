"""Python syntax analyzer: detect dangerous operations structurally.

Uses the stdlib ``ast`` module to walk Python source and flag process
spawning, dynamic evaluation, network access, filesystem mutation,
sensitive imports, environment access and dynamic imports.  Callee names
are resolved through the file's import aliases (``import subprocess as
sp``, ``from os import system``) and matched exactly against the tables
below.

Files that fail to parse yield no findings; the pattern matcher still
covers them.
"""

from __future__ import annotations

import ast
import logging
from pathlib import Path

from clawshield.models import Finding, FindingSource, dedupe_findings
from clawshield.scanner.categories import RiskCategory

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Signature tables
# ---------------------------------------------------------------------------

_SHELL_CALLS = frozenset({
    "os.system", "os.popen",
    "os.spawnl", "os.spawnle", "os.spawnlp", "os.spawnlpe",
    "os.spawnv", "os.spawnve", "os.spawnvp", "os.spawnvpe",
    "os.execl", "os.execle", "os.execlp", "os.execlpe",
    "os.execv", "os.execve", "os.execvp", "os.execvpe",
    "os.posix_spawn", "os.posix_spawnp",
    "subprocess.run", "subprocess.call", "subprocess.Popen",
    "subprocess.check_call", "subprocess.check_output",
    "subprocess.getoutput", "subprocess.getstatusoutput",
    "commands.getoutput", "commands.getstatusoutput",
    "pty.spawn",
    "asyncio.create_subprocess_shell", "asyncio.create_subprocess_exec",
})

_EVAL_CALLS = frozenset({"eval", "exec", "compile", "builtins.eval", "builtins.exec"})

# Network primitives callable directly once imported.
_NETWORK_CALLS = frozenset({
    "urllib.request.urlopen", "urllib.urlopen", "urllib2.urlopen",
    "socket.create_connection",
})
_NETWORK_OBJECTS = frozenset({
    "requests", "httpx", "aiohttp", "urllib3", "http.client", "socket",
    "ftplib", "smtplib", "telnetlib",
})
_NETWORK_METHODS = frozenset({
    "get", "post", "put", "patch", "delete", "head", "options", "request",
    "urlopen", "create_connection", "connect", "HTTPConnection",
    "HTTPSConnection", "ClientSession", "PoolManager", "FTP", "SMTP",
    "SMTP_SSL", "Telnet", "Client", "AsyncClient", "stream",
})

_FS_DELETE_CALLS = frozenset({
    "os.remove", "os.unlink", "os.rmdir", "os.removedirs", "shutil.rmtree",
})
_FS_WRITE_CALLS = frozenset({
    "os.rename", "os.renames", "os.replace", "os.chmod", "os.chown",
    "os.lchown", "os.truncate", "os.ftruncate", "os.mkdir", "os.makedirs",
    "os.symlink", "os.link", "os.mkfifo",
    "shutil.copy", "shutil.copy2", "shutil.copyfile", "shutil.copytree",
    "shutil.copymode", "shutil.copystat", "shutil.move", "shutil.chown",
})
# Members called on a ``Path(...)`` object.
_PATH_DELETE_MEMBERS = frozenset({"unlink", "rmdir"})
_PATH_WRITE_MEMBERS = frozenset({
    "write_text", "write_bytes", "touch", "mkdir", "rename", "replace",
    "chmod", "symlink_to", "hardlink_to",
})
_PATH_CONSTRUCTORS = frozenset({"pathlib.Path", "pathlib.PosixPath", "pathlib.WindowsPath"})

_SENSITIVE_MODULES = frozenset({
    "subprocess", "os", "pty", "shutil", "socket", "ctypes", "http.client",
    "urllib.request", "importlib", "marshal", "pickle", "multiprocessing",
})

_ENV_OBJECT = "os.environ"
_ENV_CALLS = frozenset({"os.getenv", "os.putenv", "os.unsetenv", "os.environb"})

_DYNAMIC_IMPORT_CALLS = frozenset({"importlib.import_module", "__import__", "importlib.__import__"})

_OPEN_CALLS = frozenset({"open", "io.open", "builtins.open"})
_WRITE_MODE_CHARS = frozenset("wax+")


# ---------------------------------------------------------------------------
# AST visitor
# ---------------------------------------------------------------------------


class _RiskVisitor(ast.NodeVisitor):
    """Walk a module and collect findings."""

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self.findings: list[Finding] = []
        self.aliases: dict[str, str] = {}

    # -- imports --

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            local = alias.asname or alias.name.split(".")[0]
            self.aliases[local] = alias.name if alias.asname else local
            self._check_module(node, alias.name)
        self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        module = node.module or ""
        if node.level == 0 and module:
            for alias in node.names:
                if alias.name != "*":
                    self.aliases[alias.asname or alias.name] = f"{module}.{alias.name}"
            self._check_module(node, module)
        self.generic_visit(node)

    def _check_module(self, node: ast.AST, module: str) -> None:
        if module in _SENSITIVE_MODULES or module.split(".")[0] in _SENSITIVE_MODULES:
            self._add(
                node,
                RiskCategory.SENSITIVE_IMPORT,
                module,
                f'Imports sensitive module "{module}"',
            )

    # -- calls --

    def visit_Call(self, node: ast.Call) -> None:
        name = self._qualname(node.func)

        if name in _SHELL_CALLS:
            self._add(node, RiskCategory.SHELL_EXECUTION, name, f"Executes shell commands via {name}()")
        elif name in _EVAL_CALLS:
            self._add(node, RiskCategory.OBFUSCATION, name, f"Uses {name}() for dynamic execution")
        elif name in _DYNAMIC_IMPORT_CALLS:
            if not self._first_arg_is_literal(node):
                self._add(node, RiskCategory.DYNAMIC_IMPORT, name, "Imports a module from a computed name")
        elif name and self._is_network_call(name):
            self._add(node, RiskCategory.NETWORK_CALL, name, f"Makes network requests via {name}()")
        elif name in _FS_DELETE_CALLS:
            self._add(node, RiskCategory.FILESYSTEM_DELETE, name, f"Deletes files or directories via {name}()")
        elif name in _FS_WRITE_CALLS:
            self._add(node, RiskCategory.FILESYSTEM_WRITE, name, f"Writes to filesystem via {name}()")
        elif name in _ENV_CALLS:
            self._add(node, RiskCategory.CREDENTIAL_ACCESS, name, "Accesses environment variables")
        elif name in _OPEN_CALLS and self._opens_for_write(node):
            self._add(node, RiskCategory.FILESYSTEM_WRITE, "open", "Opens a file for writing")
        else:
            self._check_path_member(node)

        self.generic_visit(node)

    def _is_network_call(self, name: str) -> bool:
        if name in _NETWORK_CALLS:
            return True
        owner, _, method = name.rpartition(".")
        return owner in _NETWORK_OBJECTS and method in _NETWORK_METHODS

    def _check_path_member(self, node: ast.Call) -> None:
        func = node.func
        if not (isinstance(func, ast.Attribute) and isinstance(func.value, ast.Call)):
            return
        if self._qualname(func.value.func) not in _PATH_CONSTRUCTORS:
            return
        evidence = f"Path.{func.attr}"
        if func.attr in _PATH_DELETE_MEMBERS:
            self._add(node, RiskCategory.FILESYSTEM_DELETE, evidence, f"Deletes files or directories via {evidence}()")
        elif func.attr in _PATH_WRITE_MEMBERS:
            self._add(node, RiskCategory.FILESYSTEM_WRITE, evidence, f"Writes to filesystem via {evidence}()")

    @staticmethod
    def _first_arg_is_literal(node: ast.Call) -> bool:
        if not node.args:
            return False
        arg = node.args[0]
        return isinstance(arg, ast.Constant) and isinstance(arg.value, str)

    @staticmethod
    def _opens_for_write(node: ast.Call) -> bool:
        mode: ast.expr | None = node.args[1] if len(node.args) > 1 else None
        for kw in node.keywords:
            if kw.arg == "mode":
                mode = kw.value
        if isinstance(mode, ast.Constant) and isinstance(mode.value, str):
            return bool(_WRITE_MODE_CHARS & set(mode.value))
        # Non-literal mode: cannot tell, stay quiet.
        return False

    # -- environment --

    def visit_Attribute(self, node: ast.Attribute) -> None:
        name = self._qualname(node)
        if name == _ENV_OBJECT:
            self._add(node, RiskCategory.CREDENTIAL_ACCESS, _ENV_OBJECT, "Accesses environment variables")
        elif self._qualname(node.value) == _ENV_OBJECT:
            self._add(node, RiskCategory.CREDENTIAL_ACCESS, f"{_ENV_OBJECT}.*", "Accesses environment variables")
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if self._qualname(node.value) == _ENV_OBJECT:
            self._add(node, RiskCategory.CREDENTIAL_ACCESS, f"{_ENV_OBJECT}.*", "Accesses environment variables")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        # ``from os import environ``
        if self.aliases.get(node.id) == _ENV_OBJECT:
            self._add(node, RiskCategory.CREDENTIAL_ACCESS, _ENV_OBJECT, "Accesses environment variables")

    # -- helpers --

    def _qualname(self, node: ast.expr) -> str | None:
        """Dotted name of *node* with import aliases expanded."""
        if isinstance(node, ast.Name):
            return self.aliases.get(node.id, node.id)
        if isinstance(node, ast.Attribute):
            base = self._qualname(node.value)
            return f"{base}.{node.attr}" if base else None
        return None

    def _add(self, node: ast.AST, category: RiskCategory, evidence: str, description: str) -> None:
        self.findings.append(
            category.finding(
                FindingSource.SYNTAX,
                location=self.file_path,
                line=getattr(node, "lineno", 0),
                evidence=evidence,
                description=description,
            )
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze_python_source(source: str, file_path: str) -> list[Finding]:
    """Parse *source* and return structural findings ([] on syntax errors)."""
    try:
        tree = ast.parse(source, filename=file_path)
    except (SyntaxError, ValueError) as exc:
        logger.debug("Syntax analysis skipped for %s: %s", file_path, exc)
        return []

    visitor = _RiskVisitor(file_path)
    visitor.visit(tree)
    return dedupe_findings(visitor.findings)


def analyze_python(file_path: Path) -> list[Finding]:
    """Read and analyze a Python file ([] if unreadable or unparseable)."""
    try:
        source = file_path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", file_path, exc)
        return []
    return analyze_python_source(source, str(file_path))
