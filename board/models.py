"""
board/models.py -- Domain dataclasses for the notice board.

Pure data containers. The ownership rules live in board/store.py.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass
class Notice:
    """A notice posted by a teacher.

    posted_by is the owning user's id. It may point at a user that has since
    been deleted; notices are not removed with their author.

    id is None before the record is written to the database.
    """

    title: str
    content: str
    posted_by: int
    is_important: bool = False
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


class MutationResult(Enum):
    """Outcome of an update or delete.

    NOT_FOUND_OR_NOT_OWNED deliberately does not say which: a teacher probing
    another teacher's notice id learns nothing from it.
    """

    APPLIED = "applied"
    NOT_FOUND_OR_NOT_OWNED = "not_found_or_not_owned"

    def __bool__(self) -> bool:
        return self is MutationResult.APPLIED
