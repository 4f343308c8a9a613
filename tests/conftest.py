"""Shared test fixtures and configuration."""

import subprocess
from datetime import datetime, timezone

import pytest

from histcraft.models import CommitNode


def run(repo_dir, *args):
    """Run git in repo_dir and return stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=repo_dir,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def write_and_commit(repo_dir, files, message):
    """Write files (path -> content, None deletes) and commit them."""
    for path, content in files.items():
        target = repo_dir / path
        if content is None:
            run(repo_dir, "rm", "-q", path)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        run(repo_dir, "add", path)
    run(repo_dir, "commit", "-q", "-m", message)
    return run(repo_dir, "rev-parse", "HEAD")


@pytest.fixture
def git():
    """Callable running git commands in a repository."""
    return run


@pytest.fixture
def commit():
    """Callable writing files and committing them."""
    return write_and_commit


@pytest.fixture
def temp_repo(tmp_path):
    """Create a temporary git repository on branch main with one commit."""
    repo_dir = tmp_path / "test_repo"
    repo_dir.mkdir()

    # Initialize git repo
    run(repo_dir, "init", "-q")
    run(repo_dir, "symbolic-ref", "HEAD", "refs/heads/main")
    run(repo_dir, "config", "user.email", "test@example.com")
    run(repo_dir, "config", "user.name", "Test User")
    run(repo_dir, "config", "commit.gpgsign", "false")

    # Create initial commit
    write_and_commit(repo_dir, {"README.md": "# Test Repo\n"}, "Initial commit")

    return repo_dir


@pytest.fixture
def route_repo(temp_repo):
    """Repository with init, "add routes" and "fix typo" commits after the initial one.

    Returns the repo path and the ids of the three commits, oldest first.
    """
    c1 = write_and_commit(temp_repo, {"app.py": "app = None\n"}, "init")
    c2 = write_and_commit(
        temp_repo,
        {"routes.py": "def index():\n    return 'hello wrold'\n"},
        "add routes",
    )
    c3 = write_and_commit(
        temp_repo,
        {"routes.py": "def index():\n    return 'hello world'\n"},
        "fix typo",
    )
    return temp_repo, [c1, c2, c3]


@pytest.fixture
def make_window():
    """Factory building a window of CommitNodes without a repository.

    Commit ids are 40 character strings "c1...", "c2...", oldest first.
    """

    def _make(count, messages=None, root=False):
        nodes = []
        for i in range(count):
            sha = f"c{i + 1}".ljust(40, "0")
            if i > 0:
                parent = nodes[i - 1].id
            else:
                parent = None if root else "b".ljust(40, "0")
            nodes.append(
                CommitNode(
                    id=sha,
                    parent_id=parent,
                    author_name="Test User",
                    author_email="test@example.com",
                    authored_at="1700000000 +0000",
                    timestamp=datetime.fromtimestamp(1700000000, timezone.utc),
                    message=messages[i] if messages else f"commit {i + 1}",
                    position=i,
                    parent_index=i - 1 if i > 0 else None,
                )
            )
        return nodes

    return _make


@pytest.fixture
def two_hunk_diff():
    """Diff of a single file with two separate hunks."""
    return """diff --git a/a.txt b/a.txt
index 1111111..2222222 100644
--- a/a.txt
+++ b/a.txt
@@ -1,3 +1,3 @@
-one
+ONE
 two
 three
@@ -10,3 +10,3 @@
 ten
-eleven
+ELEVEN
 twelve
"""


@pytest.fixture
def chain_repo(temp_repo):
    """a.txt grows one line per commit: A "one", B "+two", C "+three".

    Returns the repo path and the ids of A, B and C.
    """
    a = write_and_commit(temp_repo, {"a.txt": "one\n"}, "A")
    b = write_and_commit(temp_repo, {"a.txt": "one\ntwo\n"}, "B")
    c = write_and_commit(temp_repo, {"a.txt": "one\ntwo\nthree\n"}, "C")
    return temp_repo, [a, b, c]


@pytest.fixture
def split_repo(temp_repo):
    """Repository whose last commit "add routes" has 3 hunks across 2 files."""
    lines = "".join(f"line {i}\n" for i in range(1, 21))
    write_and_commit(temp_repo, {"app.py": lines, "routes.py": "def index():\n    pass\n"}, "base files")
    changed = lines.replace("line 2\n", "line two\n").replace("line 18\n", "line eighteen\n")
    write_and_commit(
        temp_repo,
        {"app.py": changed, "routes.py": "def index():\n    return 'ok'\n"},
        "add routes",
    )
    return temp_repo


@pytest.fixture
def encoding_repo(temp_repo):
    """Last commit "add legacy files" adds café.txt with Latin-1 bytes and plain.txt.

    Returns the repo path and the id of that commit.
    """
    (temp_repo / "café.txt").write_bytes(b"caf\xe9 cr\xe8me\n")
    (temp_repo / "plain.txt").write_text("plain\n")
    run(temp_repo, "add", "-A")
    run(temp_repo, "commit", "-q", "-m", "add legacy files")
    return temp_repo, run(temp_repo, "rev-parse", "HEAD")
