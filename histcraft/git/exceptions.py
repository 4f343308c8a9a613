"""Git-related exception classes.

Contains all exception classes for Git operations:
- HistcraftError: Base exception for every histcraft error
- GitError: Base exception for git-related errors
- RepositoryUnavailable: The path is not a git work tree
- EmptyHistory: The repository has no commits
- DiffUnavailable: A commit has no parent to diff against
- DirtyWorktreeError: Uncommitted changes block a rewrite
- DetachedHeadError: HEAD does not point at a branch
- RefLockedError: Another session holds the branch reference
- PatchConflict: A patch does not apply onto its base
"""


class HistcraftError(Exception):
    """Base class for all histcraft errors."""

    pass


class GitError(HistcraftError):
    """Custom exception for git-related errors."""

    pass


class RepositoryUnavailable(GitError):
    """Raised when the path is not a valid git repository."""

    pass


class EmptyHistory(GitError):
    """Raised when the repository has no commits yet."""

    pass


class DiffUnavailable(GitError):
    """Raised when a commit cannot be diffed against a parent (root commit)."""

    pass


class DirtyWorktreeError(GitError):
    """Raised when the working tree or index has uncommitted changes."""

    pass


class DetachedHeadError(GitError):
    """Raised when HEAD is detached and there is no branch to rewrite."""

    pass


class RefLockedError(GitError):
    """Raised when another craft session holds the branch reference."""

    pass


class PatchConflict(GitError):
    """Raised when a patch does not apply cleanly onto its base."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr
