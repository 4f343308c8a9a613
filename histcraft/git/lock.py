"""Exclusive lock on a branch reference for the duration of a craft session."""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from histcraft.git.exceptions import RefLockedError
from histcraft.git.repository import Repository


def lock_path(repo: Repository, branch: str) -> Path:
    name = branch.replace("/", "-")
    return repo.git_dir / f"histcraft-{name}.lock"


@contextmanager
def ref_lock(repo: Repository, branch: str) -> Iterator[Path]:
    """Hold an exclusive lock file for branch until the block exits.

    Raises:
        RefLockedError: If another session already holds the lock.
    """
    path = lock_path(repo, branch)
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        raise RefLockedError(
            f"{branch} is locked by another craft session.\n"
            f"If no session is running, remove {path}"
        )
    try:
        os.write(fd, f"{os.getpid()}\n".encode())
    finally:
        os.close(fd)

    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
