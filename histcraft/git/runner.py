"""Git command runner and repository utilities.

Contains:
- run_git: Run a git command and return the completed process
- _run_git_command: Run a git command and return its stripped output
- get_repo_root: Get the root directory of a git work tree
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from histcraft.git.exceptions import GitError, RepositoryUnavailable

LOG = logging.getLogger(__name__)


def run_git(
    args: list[str],
    cwd: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
    input_text: Optional[str] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run a git command and return the completed process.

    Args:
        args: List of arguments to pass to git.
        cwd: Directory to run git in.
        env: Full environment for the child process (None inherits).
        input_text: Text fed to stdin.
        check: Raise GitError on a non-zero exit code.

    Returns:
        The completed process with text stdout/stderr.

    Raises:
        GitError: If git is missing, or the command fails and check is set.
    """
    LOG.debug("git %s", " ".join(args))
    try:
        result = subprocess.run(
            ["git"] + args,
            capture_output=True,
            # Non-UTF-8 bytes survive as surrogates and are written back unchanged
            encoding="utf-8",
            errors="surrogateescape",
            cwd=cwd,
            env=env,
            input=input_text,
        )
    except FileNotFoundError:
        raise GitError("Git is not installed or not in PATH.")

    if check and result.returncode != 0:
        LOG.debug("git stderr: %s", result.stderr.strip())
        raise GitError(f"Git command failed: git {' '.join(args)}\n{result.stderr.strip()}")
    return result


def _run_git_command(args: list[str], cwd: Optional[Path] = None) -> str:
    """Run a git command and return its output.

    Args:
        args: List of arguments to pass to git.
        cwd: Directory to run git in.

    Returns:
        The stdout of the git command, stripped.

    Raises:
        GitError: If the command fails.
    """
    return run_git(args, cwd=cwd).stdout.strip()


def get_repo_root(path: Optional[Path] = None) -> Path:
    """Get the root directory of the git work tree containing path.

    Args:
        path: Any directory inside the repository (defaults to the cwd).

    Returns:
        Path to the repository root.

    Raises:
        RepositoryUnavailable: If path is not inside a git work tree.
    """
    if path is not None and not Path(path).is_dir():
        raise RepositoryUnavailable(f"Not a directory: {path}")
    try:
        root = _run_git_command(["rev-parse", "--show-toplevel"], cwd=path)
    except GitError:
        raise RepositoryUnavailable(
            "Not in a git repository. Please run this command from within a git repo."
        )
    if not root:
        raise RepositoryUnavailable("Bare repositories are not supported.")
    return Path(root)
