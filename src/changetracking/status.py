"""
Change status vocabulary shared by trackers, ledgers and collections.
"""
from enum import Enum


class ChangeStatus(Enum):
    """Lifecycle status of a tracked instance.

    Exactly one value applies to an instance at any time:
    - UNCHANGED: no pending changes since wrap or last accept
    - ADDED: created (or inserted) since the last accept
    - MODIFIED: at least one property differs from its original value
    - DELETED: removed, awaiting accept (physical release) or reject (restore)
    """
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"

    # Alias: a rejected instance reports plain UNCHANGED.
    UNCHANGED_AFTER_UNDO = "unchanged"


class SortDirection(Enum):
    """Direction of a collection sort."""
    ASCENDING = "ascending"
    DESCENDING = "descending"
