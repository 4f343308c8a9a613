"""Hunk extraction for a single commit.

Contains:
- unquote_path: Decode a C-quoted path from diff output
- parse_commit_diff: Parse unified diff output into an ordered list of Hunks
- patch_paths: Files touched by a patch
- extract_hunks: Diff a commit against its parent and partition it into Hunks
- HunkExtractor: Memoising extractor with optional background computation
"""

import hashlib
import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from histcraft.git.exceptions import DiffUnavailable
from histcraft.git.repository import Repository
from histcraft.models import CommitNode, Hunk

LOG = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_QUOTED_B_PATH_RE = re.compile(r'"b/(?:[^"\\]|\\.)*"$')
_OCTAL_RE = re.compile(r"[0-7]{3}")
_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


def unquote_path(token: str) -> str:
    """Decode a path git wrote C-quoted (non-ASCII or special characters)."""
    if len(token) < 2 or not (token.startswith('"') and token.endswith('"')):
        return token
    body = token[1:-1]
    raw = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 == len(body):
            raw.extend(ch.encode("utf-8", "surrogateescape"))
            i += 1
        elif _OCTAL_RE.match(body, i + 1):
            raw.append(int(body[i + 1:i + 4], 8))
            i += 4
        else:
            raw.append(_C_ESCAPES.get(body[i + 1], ord(body[i + 1])))
            i += 2
    return raw.decode("utf-8", "surrogateescape")


def _block_path(lines: list[str]) -> str:
    """Path of a file block, from its ---/+++ lines or its diff --git header."""
    for line in lines:
        if line.startswith("@@"):
            break
        for marker, prefix in (("+++ ", "b/"), ("--- ", "a/")):
            if line.startswith(marker):
                path = unquote_path(line[len(marker):].rstrip("\t"))
                if path.startswith(prefix):
                    return path[len(prefix):]

    rest = lines[0][len("diff --git "):]
    quoted = _QUOTED_B_PATH_RE.search(rest)
    if quoted:
        return unquote_path(quoted.group(0))[2:]
    if rest.startswith("a/") and len(rest) % 2 == 1:
        # Renames are disabled, so the header reads "a/<path> b/<path>"
        return rest[2:2 + (len(rest) - 5) // 2]
    return rest


def parse_commit_diff(diff_output: str) -> list[Hunk]:
    """Parse unified diff output from 'git diff-tree -p'.

    Args:
        diff_output: Raw diff text, trailing newline included

    Returns:
        Hunks in file order, then in hunk order within each file
    """
    hunks: list[Hunk] = []

    if not diff_output.strip():
        return hunks

    # Each file starts with 'diff --git a/... b/...'
    file_blocks = re.split(r"(?=^diff --git )", diff_output, flags=re.MULTILINE)

    for block in file_blocks:
        if not block.startswith("diff --git"):
            continue
        hunks.extend(_parse_file_block(block.split("\n"), len(hunks)))

    return hunks


def patch_paths(patch: str) -> list[str]:
    """Return the files a patch touches, in patch order."""
    paths: list[str] = []
    for hunk in parse_commit_diff(patch):
        if hunk.file_path not in paths:
            paths.append(hunk.file_path)
    return paths


def _parse_file_block(lines: list[str], start_index: int) -> list[Hunk]:
    """Parse a single file block from the diff.

    Args:
        lines: Lines of the file block
        start_index: Extraction index of the first hunk of this file

    Returns:
        Hunks of the file; a single whole-file hunk when it has no @@ sections
    """
    file_path = _block_path(lines)

    is_binary = any(ln.startswith(("GIT binary patch", "Binary files")) for ln in lines)
    first_hunk = next((i for i, ln in enumerate(lines) if ln.startswith("@@")), None)

    if is_binary or first_hunk is None:
        header_lines = list(lines)
        while header_lines and not header_lines[-1]:
            header_lines.pop()
        if is_binary:
            # git's binary patch format ends with a blank line
            header_lines.append("")
        return [_create_hunk(start_index, file_path, "", [], header_lines)]

    file_header = lines[:first_hunk]
    hunks: list[Hunk] = []
    current: list[str] = []
    for line in lines[first_hunk:]:
        if line.startswith("@@") and current:
            hunks.append(_create_hunk(start_index + len(hunks), file_path, current[0], current, file_header))
            current = []
        current.append(line)

    while current and not current[-1]:
        current.pop()
    if current:
        hunks.append(_create_hunk(start_index + len(hunks), file_path, current[0], current, file_header))
    return hunks


def _create_hunk(
    index: int, file_path: str, header: str, lines: list[str], file_header: list[str]
) -> Hunk:
    """Create a Hunk from parsed hunk data.

    Args:
        index: Extraction index of the hunk within the commit
        file_path: Path to the file
        header: The @@ header line, or "" for a whole-file change
        lines: All lines of the hunk including header
        file_header: The file's diff header lines

    Returns:
        Hunk with a stable id
    """
    old_start = old_len = new_start = new_len = 0
    match = _HUNK_HEADER_RE.match(header) if header else None
    if match:
        old_start = int(match.group(1))
        old_len = int(match.group(2)) if match.group(2) is not None else 1
        new_start = int(match.group(3))
        new_len = int(match.group(4)) if match.group(4) is not None else 1

    # Stable ID with hash suffix for uniqueness
    content = "\n".join(file_header[:1] + lines) if lines else "\n".join(file_header)
    data = content.encode("utf-8", "surrogateescape")
    content_hash = hashlib.md5(data, usedforsecurity=False).hexdigest()[:6]

    return Hunk(
        id=f"H{index + 1}_{content_hash}",
        file_path=file_path,
        header=header,
        old_start=old_start,
        old_len=old_len,
        new_start=new_start,
        new_len=new_len,
        lines=tuple(lines),
        file_header=tuple(file_header),
        index=index,
    )


def extract_hunks(repo: Repository, commit: CommitNode) -> list[Hunk]:
    """Diff a commit against its parent and partition it into hunks.

    Args:
        repo: Repository collaborator
        commit: The commit to split

    Returns:
        Ordered hunks of the commit

    Raises:
        DiffUnavailable: If the commit has no parent (root commit)
    """
    if commit.parent_id is None:
        raise DiffUnavailable(f"{commit.short_id} is a root commit; it cannot be split")
    hunks = parse_commit_diff(repo.diff(commit.id))
    LOG.debug("extracted %d hunks from %s", len(hunks), commit.short_id)
    return hunks


class HunkExtractor:
    """Lazily extracts and caches hunk sets per commit.

    ``extract_async`` runs the diff on a worker thread; callers must join the
    returned future before registering the hunks on a plan.
    """

    def __init__(self, repo: Repository):
        self.repo = repo
        self._cache: dict[str, tuple[Hunk, ...]] = {}
        self._pool: Optional[ThreadPoolExecutor] = None

    def extract(self, commit: CommitNode) -> tuple[Hunk, ...]:
        if commit.id not in self._cache:
            self._cache[commit.id] = tuple(extract_hunks(self.repo, commit))
        return self._cache[commit.id]

    def extract_async(self, commit: CommitNode) -> Future:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hunks")
        return self._pool.submit(self.extract, commit)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
