"""Exception hierarchy for ClawShield."""

from __future__ import annotations


class ClawShieldError(Exception):
    """Base class for all ClawShield errors."""


class SkillNotFoundError(ClawShieldError):
    """The skill path handed to the scanner does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Skill path not found: {path}")
        self.path = path


class PolicyError(ClawShieldError):
    """A policy value could not be applied."""


class GuardViolation(PermissionError):
    """Raised inside a guarded skill when the policy denies an operation.

    Subclasses :class:`PermissionError` so skill code that already handles
    OS permission failures handles guard denials the same way.
    """

    def __init__(self, kind: str, target: str | None = None, fn: str = "") -> None:
        what = f"{kind} ({fn})" if fn else kind
        msg = f"ClawShield blocked {what}"
        if target:
            msg += f": {target}"
        super().__init__(msg)
        self.kind = kind
        self.target = target
        self.fn = fn
