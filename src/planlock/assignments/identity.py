"""Repository and user identity resolution."""

from __future__ import annotations

import hashlib
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from planlock.logging import get_logger

log = get_logger("identity")

USER_ENV_VARS = ("PLANLOCK_USER", "USER", "USERNAME", "LOGNAME")

_SCP_REMOTE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>.+)$")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class RepositoryIdentity:
    """Stable identifier for the repository a workspace belongs to."""

    repository_id: str
    remote_url: str | None
    git_root: Path


def _git(args: list[str], cwd: Path) -> str | None:
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        log.warning("git executable not found")
        return None
    if completed.returncode != 0:
        return None
    output = completed.stdout.strip()
    return output or None


def _sanitize(part: str) -> str:
    return _UNSAFE.sub("_", part).strip("_")


def repository_id_from_remote(remote_url: str) -> str | None:
    """Derive ``host__owner__repo`` from a remote URL.

    Handles ``https://host/owner/repo.git``, ``ssh://git@host/owner/repo``
    and scp-like ``git@host:owner/repo.git``. Credentials and ports are
    dropped so every clone of the same repository maps to one id.
    """
    url = remote_url.strip()
    if not url:
        return None

    if "://" in url:
        _, rest = url.split("://", 1)
        host, _, path = rest.partition("/")
        host = host.rsplit("@", 1)[-1].split(":", 1)[0]
    else:
        match = _SCP_REMOTE.match(url)
        if match is None:
            return None
        host = match.group("host")
        path = match.group("path")

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]

    parts = [_sanitize(part) for part in [host, *path.split("/")]]
    parts = [part for part in parts if part]
    if len(parts) < 2:
        return None
    return "__".join(parts).lower()


def _local_repository_id(git_root: Path) -> str:
    digest = hashlib.sha1(str(git_root).encode("utf-8")).hexdigest()[:8]
    name = _sanitize(git_root.name) or "repo"
    return f"local-{name}-{digest}"


def get_repository_identity(cwd: Path | str | None = None) -> RepositoryIdentity:
    """Resolve the repository identity for ``cwd``.

    The id comes from the ``origin`` remote when there is one, otherwise
    from the resolved checkout root. Outside a git checkout the directory
    itself is treated as the root.
    """
    base = Path(cwd) if cwd is not None else Path.cwd()
    top = _git(["rev-parse", "--show-toplevel"], base)
    git_root = Path(top).resolve() if top else base.resolve()

    remote_url = _git(["remote", "get-url", "origin"], git_root)
    repository_id = repository_id_from_remote(remote_url) if remote_url else None
    if repository_id is None:
        repository_id = _local_repository_id(git_root)

    log.debug("Repository identity for %s: %s", git_root, repository_id)
    return RepositoryIdentity(
        repository_id=repository_id,
        remote_url=remote_url,
        git_root=git_root,
    )


def get_user_identity() -> str | None:
    """Current user name from the environment, or None."""
    for name in USER_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None
