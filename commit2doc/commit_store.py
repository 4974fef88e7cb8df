import logging
from typing import Iterator, List, Optional, Tuple

from .models import Commit, CommitSource

logger = logging.getLogger(__name__)

MANUAL_HASH = "manual"
MANUAL_MESSAGE = "Manual Diff Entry"


def manual_commit(diff: str, message: Optional[str] = None) -> Commit:
    """Wraps pasted diff text as a commit record."""
    return Commit(
        hash=MANUAL_HASH,
        message=message if message and not message.isspace() else MANUAL_MESSAGE,
        diff=diff,
        source=CommitSource.MANUAL,
    )


class CommitStore:
    """
    Session-scoped, insertion-ordered collection of commits.

    Commits are only ever appended or removed by id. The same change may be
    added more than once; each addition carries its own id.
    """

    def __init__(self):
        self._commits: List[Commit] = []

    def add(self, commit: Commit) -> Commit:
        self._commits.append(commit)
        logger.info(f"Added {commit.source.value} commit {commit.hash} ({commit.id}); {len(self._commits)} in store")
        return commit

    def remove(self, commit_id: str) -> bool:
        for index, commit in enumerate(self._commits):
            if commit.id == commit_id:
                del self._commits[index]
                logger.info(f"Removed commit {commit.hash} ({commit_id})")
                return True
        logger.debug(f"No commit with id {commit_id} to remove")
        return False

    def clear(self) -> None:
        self._commits.clear()

    @property
    def commits(self) -> Tuple[Commit, ...]:
        return tuple(self._commits)

    def __iter__(self) -> Iterator[Commit]:
        return iter(self.commits)

    def __len__(self) -> int:
        return len(self._commits)
