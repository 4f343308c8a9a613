"""Repository collaborator used by the craft engine.

Contains:
- Repository: Thin wrapper over the git executable providing commit reads,
  commit diffs, patch application onto arbitrary bases, atomic ref updates
  and the work tree operations needed for conflict resolution and rollback.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from histcraft.git.exceptions import (
    DetachedHeadError,
    DirtyWorktreeError,
    EmptyHistory,
    PatchConflict,
)
from histcraft.git.runner import get_repo_root, run_git
from histcraft.models import Signature

LOG = logging.getLogger(__name__)

# Field and record separators for machine-readable git log output
FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"

REFLOG_MESSAGE = "histcraft: craft"


class Repository:
    """A git work tree driven through the git CLI."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._git_dir: Optional[Path] = None

    @classmethod
    def open(cls, path: Optional[Path] = None) -> "Repository":
        """Open the repository containing path.

        Raises:
            RepositoryUnavailable: If path is not inside a git work tree.
        """
        return cls(get_repo_root(path))

    def git(self, *args: str, input_text: Optional[str] = None, env: Optional[dict[str, str]] = None) -> str:
        """Run git in the repository root and return raw stdout."""
        return run_git(list(args), cwd=self.root, env=env, input_text=input_text).stdout

    @property
    def git_dir(self) -> Path:
        if self._git_dir is None:
            self._git_dir = Path(self.git("rev-parse", "--absolute-git-dir").strip())
        return self._git_dir

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current_ref(self) -> str:
        """Return the commit id HEAD points at.

        Raises:
            EmptyHistory: If the repository has no commits yet.
        """
        result = run_git(["rev-parse", "--verify", "--quiet", "HEAD^{commit}"], cwd=self.root, check=False)
        if result.returncode != 0 or not result.stdout.strip():
            raise EmptyHistory("The repository has no commits yet.")
        return result.stdout.strip()

    def current_branch(self) -> str:
        """Return the full ref name of the checked out branch.

        Raises:
            DetachedHeadError: If HEAD is detached.
        """
        result = run_git(["symbolic-ref", "--quiet", "HEAD"], cwd=self.root, check=False)
        if result.returncode != 0:
            raise DetachedHeadError("detached HEAD - cannot craft")
        return result.stdout.strip()

    def is_clean(self) -> bool:
        """Return True when neither the index nor tracked files have changes."""
        return not self.git("status", "--porcelain", "--untracked-files=no").strip()

    def ensure_clean(self) -> None:
        if not self.is_clean():
            raise DirtyWorktreeError("dirty working tree - commit or stash changes first")

    def log_records(self, count: int, rev: str = "HEAD") -> list[list[str]]:
        """Return raw first-parent log records, newest first.

        Each record is [sha, parents, author name, author email, raw author
        date, message].
        """
        fmt = FIELD_SEP.join(["%H", "%P", "%an", "%ae", "%ad", "%B"]) + RECORD_SEP
        output = self.git(
            "log", "--first-parent", f"-n{count}", "--date=raw", f"--format={fmt}", rev
        )
        records = []
        for raw in output.split(RECORD_SEP):
            raw = raw.lstrip("\n")
            if not raw:
                continue
            records.append(raw.split(FIELD_SEP, 5))
        return records

    def parents(self, commit_id: str) -> list[str]:
        line = self.git("rev-list", "--parents", "-n1", commit_id).split()
        return line[1:]

    def commit_message(self, commit_id: str) -> str:
        return self.git("log", "-1", "--format=%B", commit_id).rstrip("\n")

    def commit_author(self, commit_id: str) -> Signature:
        out = self.git("log", "-1", "--date=raw", f"--format=%an{FIELD_SEP}%ae{FIELD_SEP}%ad", commit_id)
        name, email, date = out.strip("\n").split(FIELD_SEP)
        return Signature(name, email, date)

    def diff(self, commit_id: str) -> str:
        """Return the patch of a commit against its first parent.

        Root commits are diffed against the empty tree.
        """
        args = [
            "diff-tree", "-p", "--no-color", "--no-ext-diff", "--full-index",
            "--binary", "--no-renames", "--src-prefix=a/", "--dst-prefix=b/",
        ]
        parents = self.parents(commit_id)
        if parents:
            return self.git(*args, parents[0], commit_id)
        return self.git(*args, "--root", commit_id)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = run_git(["merge-base", "--is-ancestor", ancestor, descendant], cwd=self.root, check=False)
        return result.returncode == 0

    def resolve(self, rev: str) -> Optional[str]:
        result = run_git(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], cwd=self.root, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Object writes (never touch refs, index or work tree)
    # ------------------------------------------------------------------

    @contextmanager
    def _scratch_index(self) -> Iterator[dict[str, str]]:
        """Yield an environment pointing git at a throwaway index file."""
        index_file = self.git_dir / f"histcraft-index-{os.getpid()}"
        env = dict(os.environ, GIT_INDEX_FILE=str(index_file))
        try:
            yield env
        finally:
            try:
                index_file.unlink()
            except FileNotFoundError:
                pass

    def commit_tree(
        self,
        tree: str,
        parents: list[str],
        message: str,
        author: Optional[Signature] = None,
    ) -> str:
        """Create a commit object and return its id."""
        env = dict(os.environ)
        if author is not None:
            env.update(
                GIT_AUTHOR_NAME=author.name,
                GIT_AUTHOR_EMAIL=author.email,
                GIT_AUTHOR_DATE=author.date,
            )
        args = ["commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        return self.git(*args, input_text=message.rstrip("\n") + "\n", env=env).strip()

    def apply_tree(self, base: Optional[str], patch: str) -> str:
        """Apply patch onto the tree of base in a scratch index; return the tree id."""
        with self._scratch_index() as env:
            if base:
                self.git("read-tree", base, env=env)
            else:
                self.git("read-tree", "--empty", env=env)
            if patch.strip():
                result = run_git(
                    ["apply", "--cached", "--whitespace=nowarn", "-"],
                    cwd=self.root,
                    env=env,
                    input_text=patch,
                    check=False,
                )
                if result.returncode != 0:
                    raise PatchConflict("patch does not apply", result.stderr.strip())
            return self.git("write-tree", env=env).strip()

    def apply_patch(
        self,
        base: Optional[str],
        patch: str,
        message: str,
        author: Optional[Signature] = None,
    ) -> str:
        """Apply patch on top of base as a new commit.

        Args:
            base: Parent commit, or None to create a root commit
            patch: Patch text (may be empty for an empty commit)
            message: Commit message
            author: Author identity to preserve

        Returns:
            The new commit id

        Raises:
            PatchConflict: If the patch does not apply onto base
        """
        tree = self.apply_tree(base, patch)
        return self.commit_tree(tree, [base] if base else [], message, author)

    def merge_patches(self, base: str, patch: str, message: Union[str, Callable[[], str]]) -> str:
        """Fold patch into base, replacing it with a combined commit.

        The combined commit keeps base's parents and author. message may be
        a callable, invoked only once the patch applied.

        Raises:
            PatchConflict: If the patch does not apply onto base
        """
        tree = self.apply_tree(base, patch)
        if callable(message):
            message = message()
        return self.commit_tree(tree, self.parents(base), message, self.commit_author(base))

    # ------------------------------------------------------------------
    # Refs, index and work tree
    # ------------------------------------------------------------------

    def update_ref(self, name: str, new: str, old: Optional[str] = None) -> None:
        """Atomically move ref name to new, verifying it still points at old."""
        args = ["update-ref", "-m", REFLOG_MESSAGE, name, new]
        if old:
            args.append(old)
        self.git(*args)

    def head(self) -> str:
        return self.git("rev-parse", "HEAD").strip()

    def detach_head(self, commit_id: str) -> None:
        """Point HEAD directly at commit_id without touching any branch."""
        self.git("update-ref", "--no-deref", "-m", REFLOG_MESSAGE, "HEAD", commit_id)

    def attach_head(self, branch: str) -> None:
        self.git("symbolic-ref", "-m", REFLOG_MESSAGE, "HEAD", branch)

    def switch_tree(self, old: str, new: str) -> None:
        """Move index and work tree from commit old to commit new.

        Fails without touching anything if local changes would be lost.
        """
        self.git("read-tree", "-m", "-u", old, new)

    def reset_tree(self, commit_id: str) -> None:
        """Force index and tracked work tree files to match commit_id."""
        self.git("read-tree", "--reset", "-u", commit_id)

    def apply_3way(self, patch: str) -> bool:
        """Apply patch to index and work tree, leaving conflict markers on failure."""
        result = run_git(
            ["apply", "--3way", "--index", "--whitespace=nowarn", "-"],
            cwd=self.root,
            input_text=patch,
            check=False,
        )
        if result.returncode != 0:
            LOG.debug("3-way apply failed: %s", result.stderr.strip())
        return result.returncode == 0

    def unmerged_files(self) -> list[str]:
        """Return paths with unresolved conflicts in the index."""
        output = self.git("ls-files", "--unmerged", "-z")
        paths: list[str] = []
        for entry in filter(None, output.split("\0")):
            path = entry.split("\t", 1)[-1]
            if path not in paths:
                paths.append(path)
        return paths

    def unstaged_files(self) -> list[str]:
        """Return tracked paths with changes not yet added to the index."""
        return [p for p in self.git("diff", "--name-only", "-z").split("\0") if p]

    def has_staged_changes(self) -> bool:
        result = run_git(["diff", "--cached", "--quiet"], cwd=self.root, check=False)
        return result.returncode != 0

    def write_index_tree(self) -> str:
        """Write the real index as a tree (fails while conflicts remain)."""
        return self.git("write-tree").strip()

    def upstream_of(self, branch: str) -> Optional[str]:
        """Return the commit of origin's copy of branch, if any."""
        short = branch[len("refs/heads/"):] if branch.startswith("refs/heads/") else branch
        return self.resolve(f"refs/remotes/origin/{short}")


