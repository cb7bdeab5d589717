"""Python interception adapter: route sensitive stdlib calls through a guard.

:func:`install` replaces process-spawn, filesystem-write, socket-connect
and environment entry points with wrappers that call
:meth:`RuntimeGuard.check` before delegating to the original.  Shell and
environment wrappers are only installed when the policy blocks them;
filesystem and network wrappers are always installed so allowed
operations can be audited.

:func:`activate_from_env` is what the launcher's ``sitecustomize`` calls.
"""

from __future__ import annotations

import builtins
import functools
import io
import logging
import os
import shutil
import socket
import subprocess
import threading
from typing import Any, Callable

from clawshield.guard.config import GuardSettings
from clawshield.guard.runtime import GuardedEnviron, RuntimeGuard
from clawshield.policy import ENV_SET, FS_WRITE, NETWORK, SHELL

logger = logging.getLogger(__name__)

_SHELL_TARGETS: dict[Any, tuple[str, ...]] = {
    os: (
        "system", "popen",
        "spawnl", "spawnle", "spawnlp", "spawnlpe",
        "spawnv", "spawnve", "spawnvp", "spawnvpe",
        "execl", "execle", "execlp", "execlpe",
        "execv", "execve", "execvp", "execvpe",
        "posix_spawn", "posix_spawnp",
    ),
    subprocess: (
        "Popen", "run", "call", "check_call", "check_output",
        "getoutput", "getstatusoutput",
    ),
}

# (function name, positional indices that are written to)
_OS_WRITE_TARGETS = (
    ("remove", (0,)), ("unlink", (0,)), ("rmdir", (0,)),
    ("mkdir", (0,)), ("makedirs", (0,)),
    ("rename", (0, 1)), ("replace", (0, 1)),
)
_SHUTIL_WRITE_TARGETS = (
    ("rmtree", (0,)), ("move", (0, 1)),
    ("copy", (1,)), ("copy2", (1,)), ("copyfile", (1,)), ("copytree", (1,)),
)

_WRITE_MODE_CHARS = ("w", "a", "x", "+")
_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_CREAT | os.O_TRUNC | os.O_APPEND
_INET_FAMILIES = (socket.AF_INET, socket.AF_INET6)

# (owner, attribute, original) in patch order.
_patches: list[tuple[Any, str, Any]] = []
_active: RuntimeGuard | None = None
# Set while create_connection runs for a host the guard already approved.
_approved = threading.local()


def _patch(owner: Any, name: str, replacement: Any) -> None:
    original = getattr(owner, name, None)
    if original is None:
        return
    _patches.append((owner, name, original))
    setattr(owner, name, replacement)


def _arg(args: tuple, kwargs: dict, index: int, *names: str) -> Any:
    if len(args) > index:
        return args[index]
    for name in names:
        if name in kwargs:
            return kwargs[name]
    return None


# ---------------------------------------------------------------------------
# Wrappers
# ---------------------------------------------------------------------------


def _shell_wrapper(guard: RuntimeGuard, owner_name: str, name: str, original: Callable) -> Callable:
    fn = f"{owner_name}.{name}"

    @functools.wraps(original, updated=())
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        command = _arg(args, kwargs, 0, "args", "cmd", "command", "path")
        guard.check(SHELL, None if command is None else str(command)[:200], fn)
        return original(*args, **kwargs)

    return wrapper


def _path_wrapper(guard: RuntimeGuard, fn: str, indices: tuple[int, ...], original: Callable) -> Callable:
    keywords = {0: ("path", "src", "name"), 1: ("dst",)}

    @functools.wraps(original)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        for index in indices:
            target = _arg(args, kwargs, index, *keywords.get(index, ()))
            if target is not None:
                guard.check(FS_WRITE, os.fsdecode(os.fspath(target)) if not isinstance(target, int) else str(target), fn)
        return original(*args, **kwargs)

    return wrapper


def _open_wrapper(guard: RuntimeGuard, fn: str, original: Callable) -> Callable:
    @functools.wraps(original)
    def wrapper(file: Any, mode: str = "r", *args: Any, **kwargs: Any) -> Any:
        if isinstance(mode, str) and any(c in mode for c in _WRITE_MODE_CHARS) and not isinstance(file, int):
            guard.check(FS_WRITE, os.fsdecode(os.fspath(file)), fn)
        return original(file, mode, *args, **kwargs)

    return wrapper


def _os_open_wrapper(guard: RuntimeGuard, original: Callable) -> Callable:
    @functools.wraps(original)
    def wrapper(path: Any, flags: int, *args: Any, **kwargs: Any) -> Any:
        if flags & _WRITE_FLAGS:
            guard.check(FS_WRITE, os.fsdecode(os.fspath(path)), "os.open")
        return original(path, flags, *args, **kwargs)

    return wrapper


def _host(address: Any) -> str | None:
    if isinstance(address, tuple) and address:
        return str(address[0])
    if isinstance(address, (str, bytes)):
        return os.fsdecode(address)
    return None


def _connect_wrapper(guard: RuntimeGuard, fn: str, original: Callable) -> Callable:
    @functools.wraps(original)
    def wrapper(self: socket.socket, address: Any) -> Any:
        if self.family in _INET_FAMILIES and not getattr(_approved, "host", None):
            guard.check(NETWORK, _host(address), fn)
        return original(self, address)

    return wrapper


def _create_connection_wrapper(guard: RuntimeGuard, original: Callable) -> Callable:
    @functools.wraps(original)
    def wrapper(address: Any, *args: Any, **kwargs: Any) -> Any:
        host = _host(address)
        guard.check(NETWORK, host, "socket.create_connection")
        _approved.host = host
        try:
            return original(address, *args, **kwargs)
        finally:
            _approved.host = None

    return wrapper


def _putenv_wrapper(guard: RuntimeGuard, original: Callable) -> Callable:
    @functools.wraps(original)
    def wrapper(key: str, value: str) -> None:
        guard.check(ENV_SET, key, "os.putenv")
        original(key, value)

    return wrapper


# ---------------------------------------------------------------------------
# Install / uninstall
# ---------------------------------------------------------------------------


def install(guard: RuntimeGuard) -> RuntimeGuard:
    """Patch the interpreter so sensitive calls go through *guard*.

    Installing again first removes the previous patches.
    """
    global _active
    if _active is not None:
        uninstall()
    settings = guard.settings

    if settings.block_shell:
        for owner, names in _SHELL_TARGETS.items():
            for name in names:
                original = getattr(owner, name, None)
                if callable(original):
                    _patch(owner, name, _shell_wrapper(guard, owner.__name__, name, original))

    _patch(builtins, "open", _open_wrapper(guard, "open", builtins.open))
    _patch(io, "open", _open_wrapper(guard, "io.open", io.open))
    _patch(os, "open", _os_open_wrapper(guard, os.open))
    for name, indices in _OS_WRITE_TARGETS:
        _patch(os, name, _path_wrapper(guard, f"os.{name}", indices, getattr(os, name)))
    for name, indices in _SHUTIL_WRITE_TARGETS:
        _patch(shutil, name, _path_wrapper(guard, f"shutil.{name}", indices, getattr(shutil, name)))

    _patch(socket.socket, "connect", _connect_wrapper(guard, "socket.connect", socket.socket.connect))
    _patch(socket.socket, "connect_ex", _connect_wrapper(guard, "socket.connect_ex", socket.socket.connect_ex))
    _patch(socket, "create_connection", _create_connection_wrapper(guard, socket.create_connection))

    if settings.block_secrets:
        guarded = GuardedEnviron(os.environ, guard)
        _patch(os, "environ", guarded)
        _patch(os, "getenv", lambda key, default=None: guarded.get(key, default))
        _patch(os, "putenv", _putenv_wrapper(guard, os.putenv))

    _active = guard
    logger.debug("Runtime guard installed (%d patches)", len(_patches))
    return guard


def uninstall() -> None:
    """Restore every patched attribute."""
    global _active
    while _patches:
        owner, name, original = _patches.pop()
        setattr(owner, name, original)
    _active = None


def active_guard() -> RuntimeGuard | None:
    return _active


def activate_from_env(environ: dict[str, str] | None = None) -> RuntimeGuard:
    """Build a guard from ``CLAWSHIELD_*`` variables and install it."""
    guard = RuntimeGuard(GuardSettings.from_environ(environ))
    install(guard)
    guard.announce()
    return guard
