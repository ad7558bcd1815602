"""
=============================================================================
PROCESS HARDENING
=============================================================================

Two one-shot checks around startup:

    sanity_check()     BEFORE anything else: refuse to run as root.
    enter_sandbox()    AFTER the web root is loaded and the socket is
                       listening, BEFORE the first accept().

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   WHAT THE SANDBOX TAKES AWAY                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   RLIMIT_CORE = 0         a crash can't dump the in-memory site      │
    │   RLIMIT_NOFILE hard=soft the fd limit can never be raised again     │
    │   umask 0o777             anything created later is unreadable       │
    │   chdir("/")              no relative path reaches the web root      │
    │   setuid(nobody)          only if started as root with allow_root    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

By the time the sandbox is entered every file is already in memory and
the listening socket exists, so the serving phase needs none of what is
taken away.
=============================================================================
"""

import logging
import os

from .errors import SandboxError, SecurityError


logger = logging.getLogger(__name__)

UNPRIVILEGED_USER = "nobody"


def sanity_check(allow_root: bool = False) -> None:
    """
    Raises:
        SecurityError: When running as root and allow_root is False.
    """
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0 and not allow_root:
        raise SecurityError("Do not run an HTTP server as root.")


def enter_sandbox() -> None:
    """
    Surrender what the serving phase doesn't need.

    Raises:
        SandboxError: If any restriction can't be applied.
    """
    try:
        import resource
    except ImportError as e:
        raise SandboxError("sandbox_init(): resource limits are not available on this platform") from e

    try:
        resource.setrlimit(resource.RLIMIT_CORE, (0, 0))

        soft, _hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        resource.setrlimit(resource.RLIMIT_NOFILE, (soft, soft))

        os.umask(0o777)
        os.chdir("/")

        if os.geteuid() == 0:
            _drop_root()
    except (OSError, ValueError) as e:
        raise SandboxError(f"sandbox_init(): {e}") from e

    logger.info("entered sandbox.")


def _drop_root() -> None:
    import pwd

    try:
        user = pwd.getpwnam(UNPRIVILEGED_USER)
    except KeyError:
        raise SandboxError(f"cannot drop root: no user {UNPRIVILEGED_USER!r}") from None

    os.setgroups([])
    os.setgid(user.pw_gid)
    os.setuid(user.pw_uid)
    logger.info(f"dropped root privileges to {UNPRIVILEGED_USER} (uid {user.pw_uid})")
