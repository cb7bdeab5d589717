"""Runtime guard: synchronous allow/deny for sensitive operations.

The guard is the shared core behind every interception adapter.  An
adapter classifies an operation into a kind (``shell``, ``network``,
``fs_write``, ``env``, ``env_set``, ``env_delete``) and calls
:meth:`RuntimeGuard.check`; a denial is written to the audit trail before
:class:`~clawshield.exceptions.GuardViolation` is raised, so the operation
never takes effect.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import threading
from collections.abc import Iterator, MutableMapping
from typing import Any

from clawshield.exceptions import GuardViolation
from clawshield.guard import audit
from clawshield.guard.config import AuditLevel, GuardSettings
from clawshield.models import AuditAction, AuditResult
from clawshield.policy import ENV, ENV_DELETE, ENV_KINDS, ENV_SET, FS_WRITE, NETWORK, PolicyEngine, canonical_path

logger = logging.getLogger(__name__)

# Readable even when secret blocking is on.
DEFAULT_ALLOWED_ENV = frozenset({
    "PATH", "HOME", "USER", "SHELL", "TMPDIR", "TEMP", "TMP", "LANG",
    "LC_ALL", "PYTHONPATH", "VIRTUAL_ENV", "NODE_ENV", "PWD",
})

# Name of the detail field carrying the operation target, per kind.
_TARGET_FIELD = {NETWORK: "host", ENV: "key", ENV_SET: "key", ENV_DELETE: "key"}


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"

    def __bool__(self) -> bool:
        return self is Decision.ALLOW


class RuntimeGuard:
    """Policy decisions plus audit for one guarded process."""

    def __init__(self, settings: GuardSettings | None = None) -> None:
        self.settings = settings or GuardSettings()
        self.engine = PolicyEngine(self.settings.policy())
        self.allowed_env = DEFAULT_ALLOWED_ENV | frozenset(self.settings.allowed_env)
        self._audit_path = canonical_path(self.settings.audit_path)
        self._local = threading.local()

    # -- decisions --

    def decide(self, kind: str, target: Any = None) -> Decision:
        """Pure decision; no audit side effects."""
        name = None if target is None else os.fspath(target) if isinstance(target, os.PathLike) else str(target)
        if kind == FS_WRITE and name and canonical_path(name) == self._audit_path:
            return Decision.ALLOW
        if kind in ENV_KINDS and name in self.allowed_env:
            return Decision.ALLOW
        return Decision.ALLOW if self.engine.is_operation_allowed(kind, name) else Decision.DENY

    @property
    def suspended(self) -> bool:
        """True while the guard itself is writing; interception passes through."""
        return getattr(self._local, "busy", False)

    @contextlib.contextmanager
    def _suspend(self) -> Iterator[None]:
        self._local.busy = True
        try:
            yield
        finally:
            self._local.busy = False

    def check(self, kind: str, target: Any = None, fn: str = "") -> None:
        """Enforce the decision for one operation.

        Raises :class:`GuardViolation` on denial, after auditing it.
        """
        if self.suspended:
            return
        decision = self.decide(kind, target)
        details: dict[str, Any] = {"kind": kind}
        if fn:
            details["fn"] = fn
        if target is not None:
            details[_TARGET_FIELD.get(kind, "target")] = str(target)

        if not decision:
            self.record(AuditResult.BLOCKED, details)
            raise GuardViolation(kind, None if target is None else str(target), fn)
        if self.settings.audit_level is AuditLevel.ALL:
            self.record(AuditResult.SUCCESS, details)

    def record(self, result: AuditResult, details: dict[str, Any]) -> None:
        """Write one runtime entry; failures never change the decision."""
        with self._suspend():
            audit.write_audit_entry(
                AuditAction.RUNTIME,
                result,
                details=details,
                skill_id=self.settings.skill_id,
                skill_name=self.settings.skill_name,
                log_path=self.settings.audit_path,
            )

    def announce(self) -> None:
        """Record guard start-up (audit level ``all`` only)."""
        if self.settings.audit_level is not AuditLevel.ALL:
            return
        s = self.settings
        self.record(
            AuditResult.SUCCESS,
            {
                "kind": "guard_start",
                "blockShell": s.block_shell,
                "blockNetwork": s.block_network,
                "blockFsWrite": s.block_fs_write,
                "blockSecrets": s.block_secrets,
                "allowedDirs": list(s.allowed_dirs),
                "allowedDomains": list(s.allowed_domains),
            },
        )


# ---------------------------------------------------------------------------
# Environment accessor
# ---------------------------------------------------------------------------


class GuardedEnviron(MutableMapping):
    """Environment mapping whose every read and write asks the guard.

    Denied reads look like missing keys (``[]`` raises ``KeyError``,
    :meth:`get` returns the default); denied writes raise
    :class:`GuardViolation`.  Iteration only exposes readable names.
    """

    def __init__(self, backing: MutableMapping[str, str], guard: RuntimeGuard) -> None:
        self._backing = backing
        self._guard = guard

    def _readable(self, key: str) -> bool:
        return self._guard.suspended or bool(self._guard.decide(ENV, key))

    def __getitem__(self, key: str) -> str:
        try:
            self._guard.check(ENV, key)
        except GuardViolation:
            raise KeyError(key) from None
        return self._backing[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._guard.check(ENV_SET, key)
        self._backing[key] = value

    def __delitem__(self, key: str) -> None:
        self._guard.check(ENV_DELETE, key)
        del self._backing[key]

    def __iter__(self) -> Iterator[str]:
        return iter([k for k in list(self._backing) if self._readable(k)])

    def __len__(self) -> int:
        return sum(1 for k in list(self._backing) if self._readable(k))

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def copy(self) -> dict[str, str]:
        return {k: self._backing[k] for k in self}

    def __repr__(self) -> str:
        return f"GuardedEnviron({len(self)} visible keys)"
