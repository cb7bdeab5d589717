"""Policy engine: allow/deny decisions and persisted policy management.

:class:`PolicyEngine` is a pure decision object over one :class:`Policy`;
the runtime guard and the install gate both ask it.  :class:`PolicyManager`
owns ``config.json`` and records every change in the audit trail.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any

from clawshield.config import ClawShieldConfig, load_config, save_config
from clawshield.exceptions import PolicyError
from clawshield.guard import audit
from clawshield.models import DirectoryMode, DirectoryPermission, Policy

logger = logging.getLogger(__name__)

# Operation kinds understood by the engine.
SHELL = "shell"
NETWORK = "network"
FS_WRITE = "fs_write"
FS_READ = "fs_read"
ENV = "env"
ENV_SET = "env_set"
ENV_DELETE = "env_delete"
ENV_KINDS = frozenset({ENV, ENV_SET, ENV_DELETE})

# ---------------------------------------------------------------------------
# Canonicalisation
# ---------------------------------------------------------------------------


def canonical_path(path: str | os.PathLike[str]) -> str:
    """Absolute path with symlinks resolved; case-folded where the host filesystem is."""
    return os.path.normcase(os.path.realpath(os.path.expanduser(os.fspath(path))))


def path_within(target: str, base: str) -> bool:
    """True if *target* equals *base* or lies below it (separator-bounded)."""
    target = canonical_path(target)
    base = canonical_path(base)
    if target == base:
        return True
    prefix = base if base.endswith(os.sep) else base + os.sep
    return target.startswith(prefix)


def host_of(target: str) -> str:
    """Lower-cased hostname of ``host``, ``host:port`` or ``[v6]:port``."""
    host = target.strip()
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".").lower()


def domain_matches(host: str, domain: str) -> bool:
    """Exact match or dot-bounded subdomain of *domain*."""
    host = host_of(host)
    domain = domain.strip().lower().lstrip("*").lstrip(".").rstrip(".")
    if not host or not domain:
        return False
    return host == domain or host.endswith("." + domain)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PolicyEngine:
    """Answer allow/deny questions for one policy."""

    def __init__(self, policy: Policy | None = None) -> None:
        self._policy = policy or Policy()

    @property
    def policy(self) -> Policy:
        return self._policy

    def update(self, **fields: Any) -> Policy:
        """Replace whole fields of the policy (``block_shell=False`` …)."""
        known = {f.name for f in dataclasses.fields(Policy)}
        unknown = set(fields) - known
        if unknown:
            raise PolicyError(f"Unknown policy field(s): {', '.join(sorted(unknown))}")
        self._policy = dataclasses.replace(self._policy, **fields)
        return self._policy

    # -- questions --

    def is_path_allowed(self, path: str, write: bool = True) -> bool:
        for entry in self._policy.allowed_dirs:
            if write and entry.mode is not DirectoryMode.READWRITE:
                continue
            if path_within(path, entry.path):
                return True
        return False

    def is_domain_allowed(self, host: str) -> bool:
        return any(domain_matches(host, d) for d in self._policy.allowed_domains)

    def is_operation_allowed(self, kind: str, target: str | None = None) -> bool:
        p = self._policy
        if kind == SHELL:
            return not p.block_shell
        if kind == NETWORK:
            return not p.block_network or (target is not None and self.is_domain_allowed(target))
        if kind == FS_WRITE:
            return not p.block_fs_write or (target is not None and self.is_path_allowed(target))
        if kind == FS_READ:
            return True
        if kind in ENV_KINDS:
            return not p.block_secrets
        logger.debug("Unknown operation kind %r denied", kind)
        return False

    # -- allow-list edits --

    def add_allowed_dir(self, path: str, mode: DirectoryMode | str = DirectoryMode.READ) -> Policy:
        """Add *path*, or change its mode when already listed."""
        perm = DirectoryPermission(path, DirectoryMode(mode))
        dirs = list(self._policy.allowed_dirs)
        for i, existing in enumerate(dirs):
            if existing.path == path:
                dirs[i] = perm
                break
        else:
            dirs.append(perm)
        return self.update(allowed_dirs=tuple(dirs))

    def remove_allowed_dir(self, path: str) -> Policy:
        return self.update(allowed_dirs=tuple(d for d in self._policy.allowed_dirs if d.path != path))

    def add_allowed_domain(self, domain: str) -> Policy:
        if domain in self._policy.allowed_domains:
            return self._policy
        return self.update(allowed_domains=(*self._policy.allowed_domains, domain))

    def remove_allowed_domain(self, domain: str) -> Policy:
        return self.update(allowed_domains=tuple(d for d in self._policy.allowed_domains if d != domain))


# ---------------------------------------------------------------------------
# Persisted manager
# ---------------------------------------------------------------------------


class PolicyManager:
    """Load, edit and save ``config.json``; audit each change."""

    def __init__(
        self,
        config_path: str | Path | None = None,
        audit_path: str | Path | None = None,
    ) -> None:
        self.config_path = config_path
        self.audit_path = audit_path
        self.config: ClawShieldConfig = load_config(config_path)
        self.engine = PolicyEngine(self.config.default_policy)

    @property
    def policy(self) -> Policy:
        return self.engine.policy

    def _commit(self, changes: dict[str, Any]) -> Policy:
        self.config.default_policy = self.engine.policy
        save_config(self.config, self.config_path)
        audit.log_policy_change(changes, log_path=self.audit_path)
        return self.engine.policy

    def update_policy(self, **fields: Any) -> Policy:
        self.engine.update(**fields)
        changes = {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}
        return self._commit(changes)

    def add_allowed_dir(self, path: str, mode: DirectoryMode | str = DirectoryMode.READ) -> Policy:
        self.engine.add_allowed_dir(path, mode)
        return self._commit({"addAllowedDir": {"path": path, "mode": DirectoryMode(mode).value}})

    def remove_allowed_dir(self, path: str) -> Policy:
        self.engine.remove_allowed_dir(path)
        return self._commit({"removeAllowedDir": path})

    def add_allowed_domain(self, domain: str) -> Policy:
        self.engine.add_allowed_domain(domain)
        return self._commit({"addAllowedDomain": domain})

    def remove_allowed_domain(self, domain: str) -> Policy:
        self.engine.remove_allowed_domain(domain)
        return self._commit({"removeAllowedDomain": domain})

    # -- workspaces and skill toggles --

    def add_workspace_path(self, path: str) -> None:
        if path not in self.config.workspace_paths:
            self.config.workspace_paths.append(path)
            save_config(self.config, self.config_path)

    def remove_workspace_path(self, path: str) -> None:
        self.config.workspace_paths = [p for p in self.config.workspace_paths if p != path]
        save_config(self.config, self.config_path)

    def is_skill_enabled(self, skill_id: str) -> bool:
        return self.config.is_skill_enabled(skill_id)

    def set_skill_enabled(self, skill_id: str, skill_name: str, enabled: bool) -> None:
        if enabled:
            self.config.enable_skill(skill_id)
        else:
            self.config.disable_skill(skill_id)
        save_config(self.config, self.config_path)
        audit.log_toggle(skill_id, skill_name, enabled, log_path=self.audit_path)
