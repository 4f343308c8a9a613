"""Git layer for histcraft.

This package provides the repository collaborator used by the craft engine:
- exceptions: GitError, RepositoryUnavailable, EmptyHistory, DiffUnavailable, ...
- runner: run_git, _run_git_command, get_repo_root
- repository: Repository
- history: load_history, DEFAULT_WINDOW
- hunks: parse_commit_diff, patch_paths, unquote_path, extract_hunks, HunkExtractor
- lock: ref_lock
"""

# Exceptions
from histcraft.git.exceptions import (
    DetachedHeadError,
    DiffUnavailable,
    DirtyWorktreeError,
    EmptyHistory,
    GitError,
    HistcraftError,
    PatchConflict,
    RefLockedError,
    RepositoryUnavailable,
)

# Runner utilities
from histcraft.git.runner import (
    _run_git_command,
    get_repo_root,
    run_git,
)

# Repository collaborator
from histcraft.git.repository import Repository

# History loader
from histcraft.git.history import (
    DEFAULT_WINDOW,
    load_history,
)

# Hunk extractor
from histcraft.git.hunks import (
    HunkExtractor,
    extract_hunks,
    parse_commit_diff,
    patch_paths,
    unquote_path,
)

# Session lock
from histcraft.git.lock import ref_lock


__all__ = [
    # Exceptions
    "HistcraftError",
    "GitError",
    "RepositoryUnavailable",
    "EmptyHistory",
    "DiffUnavailable",
    "DirtyWorktreeError",
    "DetachedHeadError",
    "RefLockedError",
    "PatchConflict",
    # Runner
    "run_git",
    "_run_git_command",
    "get_repo_root",
    # Repository
    "Repository",
    # History
    "DEFAULT_WINDOW",
    "load_history",
    # Hunks
    "HunkExtractor",
    "extract_hunks",
    "parse_commit_diff",
    "patch_paths",
    "unquote_path",
    # Lock
    "ref_lock",
]
