"""
Notification payloads for tracked collections.

Design Philosophy: Correct by Construction
- Immutable events (frozen dataclass)
- One constructor per kind, so every event carries exactly the fields its kind needs
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


class CollectionChangeKind(Enum):
    """Kind of structural change."""
    ADDED = "added"
    REMOVED = "removed"
    REPLACED = "replaced"
    RESET = "reset"


@dataclass(frozen=True)
class CollectionChangedEvent:
    """Structural change of a tracked collection.

    ADDED:    new_item inserted at index
    REMOVED:  old_item removed from index
    REPLACED: old_item at index replaced by new_item
    RESET:    contents or order changed wholesale; re-read the collection
    """
    kind: CollectionChangeKind
    new_item: Optional[Any] = None
    old_item: Optional[Any] = None
    index: Optional[int] = None

    @classmethod
    def added(cls, item: Any, index: int) -> 'CollectionChangedEvent':
        return cls(CollectionChangeKind.ADDED, new_item=item, index=index)

    @classmethod
    def removed(cls, item: Any, index: int) -> 'CollectionChangedEvent':
        return cls(CollectionChangeKind.REMOVED, old_item=item, index=index)

    @classmethod
    def replaced(cls, new_item: Any, old_item: Any, index: int) -> 'CollectionChangedEvent':
        return cls(CollectionChangeKind.REPLACED, new_item=new_item, old_item=old_item, index=index)

    @classmethod
    def reset(cls) -> 'CollectionChangedEvent':
        return cls(CollectionChangeKind.RESET)


# Callback signatures
PropertyChangedCallback = Callable[[Any, str], None]
CollectionChangedCallback = Callable[[Any, CollectionChangedEvent], None]
ItemChangedCallback = Callable[[Any, Any, str], None]
