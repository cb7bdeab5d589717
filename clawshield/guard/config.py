"""Guard settings: the activation inputs handed to a guarded process.

The launcher encodes the effective policy into environment variables and
the guarded interpreter decodes them once at start-up::

    CLAWSHIELD_BLOCK_SHELL=1            # 1 | true | yes | on
    CLAWSHIELD_BLOCK_NETWORK=0
    CLAWSHIELD_BLOCK_FS_WRITE=0
    CLAWSHIELD_BLOCK_SECRETS=1
    CLAWSHIELD_ALLOWED_DIRS=/ws/out;/tmp/cache     # readwrite dirs, ; or , joined
    CLAWSHIELD_ALLOWED_DOMAINS=api.example.com
    CLAWSHIELD_ALLOWED_ENV=OPENAI_BASE_URL
    CLAWSHIELD_AUDIT_PATH=~/.clawshield/audit.jsonl
    CLAWSHIELD_AUDIT_LEVEL=blocked      # blocked | all
    CLAWSHIELD_SKILL_ID=3f2a…
    CLAWSHIELD_SKILL_NAME=weather
"""

from __future__ import annotations

import enum
import os
from collections.abc import Mapping
from dataclasses import dataclass

from clawshield.config import default_audit_path
from clawshield.models import DirectoryMode, DirectoryPermission, Policy, Skill

ENV_PREFIX = "CLAWSHIELD_"
_TRUE_VALUES = ("1", "true", "yes", "on")


class AuditLevel(str, enum.Enum):
    """What the guard records: denials only, or every decision."""

    BLOCKED = "blocked"
    ALL = "all"

    @classmethod
    def parse(cls, value: str | None) -> AuditLevel:
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.BLOCKED


def _env_bool(environ: Mapping[str, str], key: str, fallback: bool) -> bool:
    value = environ.get(ENV_PREFIX + key)
    if value is None:
        return fallback
    return value.strip().lower() in _TRUE_VALUES


def _parse_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.replace(";", ",").split(",") if item.strip())


@dataclass(frozen=True)
class GuardSettings:
    """Everything a :class:`~clawshield.guard.runtime.RuntimeGuard` needs.

    Frozen: a running guard is never reconfigured.
    """

    block_shell: bool = True
    block_network: bool = False
    block_fs_write: bool = False
    block_secrets: bool = False
    allowed_dirs: tuple[str, ...] = ()
    allowed_domains: tuple[str, ...] = ()
    allowed_env: tuple[str, ...] = ()
    audit_path: str = ""
    audit_level: AuditLevel = AuditLevel.BLOCKED
    skill_id: str | None = None
    skill_name: str | None = None

    def __post_init__(self) -> None:
        if not self.audit_path:
            object.__setattr__(self, "audit_path", str(default_audit_path()))

    def policy(self) -> Policy:
        """The policy view: allowed dirs are writable."""
        return Policy(
            block_shell=self.block_shell,
            block_secrets=self.block_secrets,
            block_network=self.block_network,
            block_fs_write=self.block_fs_write,
            allowed_dirs=tuple(DirectoryPermission(d, DirectoryMode.READWRITE) for d in self.allowed_dirs),
            allowed_domains=self.allowed_domains,
        )

    @classmethod
    def from_policy(
        cls,
        policy: Policy,
        *,
        skill: Skill | None = None,
        audit_path: str | os.PathLike[str] | None = None,
        audit_level: AuditLevel | str = AuditLevel.BLOCKED,
        allowed_env: tuple[str, ...] = (),
    ) -> GuardSettings:
        """Settings for running a skill under *policy*; read-only dirs are dropped."""
        return cls(
            block_shell=policy.block_shell,
            block_network=policy.block_network,
            block_fs_write=policy.block_fs_write,
            block_secrets=policy.block_secrets,
            allowed_dirs=tuple(d.path for d in policy.allowed_dirs if d.mode is DirectoryMode.READWRITE),
            allowed_domains=tuple(policy.allowed_domains),
            allowed_env=tuple(allowed_env),
            audit_path=os.fspath(audit_path) if audit_path else "",
            audit_level=AuditLevel.parse(getattr(audit_level, "value", audit_level)),
            skill_id=skill.id if skill else None,
            skill_name=skill.name if skill else None,
        )

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> GuardSettings:
        env = os.environ if environ is None else environ
        audit_path = env.get(ENV_PREFIX + "AUDIT_PATH")
        return cls(
            block_shell=_env_bool(env, "BLOCK_SHELL", True),
            block_network=_env_bool(env, "BLOCK_NETWORK", False),
            block_fs_write=_env_bool(env, "BLOCK_FS_WRITE", False),
            block_secrets=_env_bool(env, "BLOCK_SECRETS", False),
            allowed_dirs=_parse_list(env.get(ENV_PREFIX + "ALLOWED_DIRS")),
            allowed_domains=_parse_list(env.get(ENV_PREFIX + "ALLOWED_DOMAINS")),
            allowed_env=_parse_list(env.get(ENV_PREFIX + "ALLOWED_ENV")),
            audit_path=os.path.expanduser(audit_path) if audit_path else "",
            audit_level=AuditLevel.parse(env.get(ENV_PREFIX + "AUDIT_LEVEL")),
            skill_id=env.get(ENV_PREFIX + "SKILL_ID") or None,
            skill_name=env.get(ENV_PREFIX + "SKILL_NAME") or None,
        )

    def to_environ(self) -> dict[str, str]:
        """Inverse of :meth:`from_environ`."""
        env = {
            ENV_PREFIX + "BLOCK_SHELL": "1" if self.block_shell else "0",
            ENV_PREFIX + "BLOCK_NETWORK": "1" if self.block_network else "0",
            ENV_PREFIX + "BLOCK_FS_WRITE": "1" if self.block_fs_write else "0",
            ENV_PREFIX + "BLOCK_SECRETS": "1" if self.block_secrets else "0",
            ENV_PREFIX + "ALLOWED_DIRS": ";".join(self.allowed_dirs),
            ENV_PREFIX + "ALLOWED_DOMAINS": ",".join(self.allowed_domains),
            ENV_PREFIX + "ALLOWED_ENV": ",".join(self.allowed_env),
            ENV_PREFIX + "AUDIT_PATH": self.audit_path,
            ENV_PREFIX + "AUDIT_LEVEL": self.audit_level.value,
        }
        if self.skill_id:
            env[ENV_PREFIX + "SKILL_ID"] = self.skill_id
        if self.skill_name:
            env[ENV_PREFIX + "SKILL_NAME"] = self.skill_name
        return env
