"""History loading for craft sessions.

Contains:
- load_history: Read an ordered window of commits with parent linkage
- DEFAULT_WINDOW: Number of commits loaded when no count is given
"""

import logging
from datetime import datetime, timedelta, timezone

from histcraft.git.exceptions import EmptyHistory
from histcraft.git.repository import Repository
from histcraft.models import CommitNode

LOG = logging.getLogger(__name__)

DEFAULT_WINDOW = 20


def _parse_raw_date(raw: str) -> datetime:
    """Parse git's raw date format ("1700000000 +0100") into an aware datetime."""
    seconds, _, offset = raw.strip().partition(" ")
    tz = timezone.utc
    if len(offset) == 5:
        sign = -1 if offset[0] == "-" else 1
        delta = timedelta(hours=int(offset[1:3]), minutes=int(offset[3:5]))
        tz = timezone(sign * delta)
    return datetime.fromtimestamp(int(seconds), tz)


def load_history(repo: Repository, count: int = DEFAULT_WINDOW) -> list[CommitNode]:
    """Load the last count commits of HEAD's first-parent chain.

    Args:
        repo: Repository to read from
        count: Maximum number of commits in the window

    Returns:
        CommitNodes ordered oldest first; each node's parent_index points at
        its parent inside the window (None for the oldest one).

    Raises:
        EmptyHistory: If HEAD has no commits
        ValueError: If count is not positive
    """
    if count < 1:
        raise ValueError("count must be at least 1")

    repo.current_ref()  # raises EmptyHistory on an unborn branch
    records = repo.log_records(count)
    if not records:
        raise EmptyHistory("The repository has no commits yet.")

    records.reverse()
    nodes: list[CommitNode] = []
    for position, (sha, parents, name, email, date, message) in enumerate(records):
        parent_ids = parents.split()
        parent_id = parent_ids[0] if parent_ids else None
        parent_index = position - 1 if position > 0 else None
        nodes.append(
            CommitNode(
                id=sha,
                parent_id=parent_id,
                author_name=name,
                author_email=email,
                authored_at=date.strip(),
                timestamp=_parse_raw_date(date),
                message=message.rstrip("\n"),
                position=position,
                parent_index=parent_index,
                is_merge=len(parent_ids) > 1,
            )
        )

    LOG.debug("loaded %d commits (oldest %s)", len(nodes), nodes[0].short_id)
    return nodes
