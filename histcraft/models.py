"""Repository value types shared by the git layer and the craft engine.

Contains:
- Signature: Author identity preserved when a commit is rewritten
- CommitNode: One commit of the loaded history window
- Hunk: A contiguous diff region within one file of a commit
- render_patch: Build a patch from a set of hunks
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional


@dataclass(frozen=True)
class Signature:
    """Author identity of a commit."""

    name: str
    email: str
    date: str  # raw "<unix seconds> <tz offset>"


@dataclass(frozen=True)
class CommitNode:
    """One commit of the loaded window.

    The window is an immutable snapshot for the whole session; parent linkage
    inside it is expressed by position rather than by reference.
    """

    id: str
    parent_id: Optional[str]
    author_name: str
    author_email: str
    authored_at: str  # raw "<unix seconds> <tz offset>" as git stores it
    timestamp: datetime
    message: str
    position: int  # 0 = oldest commit of the window
    parent_index: Optional[int] = None
    is_merge: bool = False

    @property
    def short_id(self) -> str:
        return self.id[:7]

    @property
    def summary(self) -> str:
        """First line of the commit message."""
        return self.message.split("\n", 1)[0]

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True)
class Hunk:
    """A contiguous diff region within one file.

    Whole-file changes without ``@@`` sections (binary blobs, mode changes,
    pure renames, empty new files) are a single hunk with an empty header.
    """

    id: str
    file_path: str
    header: str  # The @@ ... @@ line, empty for whole-file changes
    old_start: int
    old_len: int
    new_start: int
    new_len: int
    lines: tuple[str, ...]  # Raw hunk lines including the @@ header
    file_header: tuple[str, ...]  # From 'diff --git' up to the first @@
    index: int = 0  # Position in the commit's extraction order

    @property
    def is_whole_file(self) -> bool:
        return not self.header

    @property
    def patch(self) -> str:
        """Standalone patch text for this hunk alone."""
        return render_patch([self])

    @property
    def added(self) -> int:
        return sum(1 for ln in self.lines[1:] if ln.startswith("+"))

    @property
    def removed(self) -> int:
        return sum(1 for ln in self.lines[1:] if ln.startswith("-"))

    def summary(self) -> str:
        """Short one-line description for list views."""
        if self.is_whole_file:
            return f"{self.file_path} (whole file)"
        return f"{self.file_path} +{self.added} -{self.removed}"

    def snippet(self, max_lines: int = 5) -> str:
        """Get a snippet of the hunk content for display."""
        content_lines = [ln for ln in self.lines if ln.startswith(("+", "-")) and not ln.startswith(("+++", "---"))]
        if len(content_lines) <= max_lines:
            return "\n".join(content_lines)
        return "\n".join(content_lines[:max_lines]) + f"\n... ({len(content_lines) - max_lines} more lines)"


def render_patch(hunks: Iterable[Hunk]) -> str:
    """Build a patch from a set of hunks of one commit.

    Hunks are grouped by file; files keep the order in which they first appear
    in extraction order, and each file header is written once with its hunks
    sorted by their original position.

    Args:
        hunks: Hunks extracted from a single commit

    Returns:
        Patch content as string (empty if no hunks)
    """
    ordered = sorted(hunks, key=lambda h: h.index)
    if not ordered:
        return ""

    hunks_by_file: dict[str, list[Hunk]] = {}
    for hunk in ordered:
        hunks_by_file.setdefault(hunk.file_path, []).append(hunk)

    patch_lines: list[str] = []
    for file_hunks in hunks_by_file.values():
        patch_lines.extend(file_hunks[0].file_header)
        for hunk in file_hunks:
            patch_lines.extend(hunk.lines)

    # git apply requires the patch to end with a newline
    return "\n".join(patch_lines) + "\n"
