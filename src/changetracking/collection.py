"""
TrackedCollection: an observable, change-tracked sequence of tracked instances.

Composition, not inheritance: the collection owns an ordered list of tracked
instances plus a mirrored list of their plain objects (``source``), kept index
aligned so the plain object graph always reflects the live membership.

Deletion policy:
- Removal from the live sequence is immediate
- Removed items that were not ADDED are marked DELETED and kept in a pending
  delete list (visible through deleted_items()) until accept_all()
- Removed ADDED items are simply detached, unless they were members when the
  collection was wrapped (or at the last accept_all()); those are kept as
  pending deletes too, so reject never loses wrap-time members
- reject_all() re-inserts pending deletes at their recorded index
- Re-inserting a DELETED instance anywhere undeletes it; other owners drop
  their pending record of it

Order:
- Indexing, insert, replace and remove work on storage (insertion) order
- Iteration follows the sort view when a sort is active
"""
import logging
from collections.abc import Collection, MutableSequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Generator, Iterable, Iterator, List, Optional, Set, Type

from changetracking.config import get_tracking_config
from changetracking.errors import InvalidStateError
from changetracking.events import CollectionChangedCallback, CollectionChangedEvent, ItemChangedCallback
from changetracking.ledger import Comparer
from changetracking.status import ChangeStatus, SortDirection
from changetracking.tracker import as_trackable, get_tracker, unwrap

logger = logging.getLogger(__name__)


@dataclass
class _PendingDelete:
    """A removed member awaiting accept_all()."""
    item: Any
    index: int


class StatusView(Collection):
    """Lazy, re-iterable view of collection members with the given statuses.

    Members are live items followed by pending deletes; status is read at
    iteration time, so the view always reflects the current state.
    """

    def __init__(self, collection: 'TrackedCollection', statuses: FrozenSet[ChangeStatus]):
        self._collection = collection
        self._statuses = statuses

    def __iter__(self) -> Iterator[Any]:
        for item in self._collection._members():
            if get_tracker(item).status in self._statuses:
                yield item

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, item: object) -> bool:
        return any(member is item for member in self)

    def __repr__(self) -> str:
        names = ', '.join(sorted(status.name for status in self._statuses))
        return f"StatusView({names}: {list(self)!r})"


def _type_has_property(cls: Type, name: str) -> bool:
    if hasattr(cls, name):
        return True
    return any(name in getattr(klass, '__annotations__', {}) for klass in cls.__mro__)


class TrackedCollection(MutableSequence):
    """Change-tracked sequence of tracked instances.

    Plain items are wrapped on the way in: as UNCHANGED at construction and
    as ADDED when inserted later. Already tracked instances keep their status.

    Thread safety: Not thread-safe (callers serialize access).
    """

    def __init__(
        self,
        items: Iterable[Any] = (),
        status: ChangeStatus = ChangeStatus.UNCHANGED,
        on_delete: Optional[Callable[[Any], None]] = None,
        item_type: Optional[Type] = None,
        make_complex_properties_trackable: Optional[bool] = None,
        make_collection_properties_trackable: Optional[bool] = None,
        comparer: Optional[Comparer] = None,
        raise_item_changed_events: Optional[bool] = None,
        item_canceled: Optional[Callable[[Any], None]] = None,
    ):
        config = get_tracking_config()
        self._make_complex_properties_trackable = (
            config.make_complex_properties_trackable
            if make_complex_properties_trackable is None else make_complex_properties_trackable
        )
        self._make_collection_properties_trackable = (
            config.make_collection_properties_trackable
            if make_collection_properties_trackable is None else make_collection_properties_trackable
        )
        self._comparer = comparer if comparer is not None else config.comparer
        self._raise_item_changed_events = (
            config.raise_item_changed_events if raise_item_changed_events is None else raise_item_changed_events
        )
        self._on_delete = on_delete
        self._item_canceled = item_canceled

        # A given list is adopted as source so the owning object's list stays in sync
        self._source: List[Any] = items if isinstance(items, list) else list(items)
        self._items: List[Any] = []
        self._pending: List[_PendingDelete] = []
        # Members at wrap time or last accept_all(), by identity; reject never discards them
        self._baseline: Dict[int, Any] = {}

        self._sort_property: Optional[str] = None
        self._sort_direction = SortDirection.ASCENDING
        self._sort_key: Optional[Callable[[Any], Any]] = None
        self._view: Optional[List[Any]] = None

        self._notifications_enabled = True
        self._on_collection_changed_callbacks: List[CollectionChangedCallback] = []
        self._on_item_changed_callbacks: List[ItemChangedCallback] = []

        for index, element in enumerate(self._source):
            tracked = self._wrap(element, status)
            if any(existing is tracked for existing in self._items):
                raise InvalidStateError(f"{tracked!r} appears twice in the collection")
            self._source[index] = unwrap(tracked)
            self._items.append(tracked)
            self._baseline[id(tracked)] = tracked
            get_tracker(tracked)._attach(self)
            self._hook(tracked)

        if item_type is None and self._source:
            item_type = type(self._source[0])
        self._item_type = item_type
        logger.debug(f"Tracking collection of {len(self._items)} {self._type_name()} items")

    # ==================== ACCESSORS ====================

    @property
    def source(self) -> List[Any]:
        """Plain objects of the live members, in storage order."""
        return self._source

    @property
    def item_type(self) -> Optional[Type]:
        return self._item_type

    @property
    def is_sorted(self) -> bool:
        return self._sort_key is not None

    @property
    def sort_property(self) -> Optional[str]:
        return self._sort_property

    @property
    def sort_direction(self) -> SortDirection:
        return self._sort_direction

    def _type_name(self) -> str:
        return self._item_type.__name__ if self._item_type is not None else 'untyped'

    def __repr__(self) -> str:
        return f"TrackedCollection({list(self)!r})"

    # ==================== SEQUENCE PROTOCOL ====================

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index):
        # Slices return a plain list of members
        return self._items[index]

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._ordered()))

    def __reversed__(self) -> Iterator[Any]:
        return reversed(list(self._ordered()))

    def __contains__(self, item: object) -> bool:
        return any(member is item for member in self._items)

    def index(self, value: Any, start: int = 0, stop: Optional[int] = None) -> int:
        """Storage index of value, by identity."""
        stop = len(self._items) if stop is None else stop
        for i, member in enumerate(self._items[start:stop], start=start):
            if member is value:
                return i
        raise ValueError(f"{value!r} is not in the collection")

    def count(self, value: Any) -> int:
        return sum(1 for member in self._items if member is value)

    def insert(self, index: int, value: Any) -> None:
        """Insert value at storage index.

        Plain values are wrapped as ADDED. Inserting a DELETED instance
        undeletes it: every owner forgets its pending delete record and the
        instance becomes live here only.

        Raises:
            InvalidStateError: value is already a live member.
        """
        tracked = self._wrap(value, ChangeStatus.ADDED)
        tracker = get_tracker(tracked)
        tracker._ensure_alive()
        if tracked in self:
            raise InvalidStateError(f"{tracked!r} is already a member of the collection")

        index = self._clamp(index)
        if tracker.base_status is ChangeStatus.DELETED:
            for owner in tracker.owners:
                owner._forget_deleted(tracked)
            tracker._undelete()
        self._insert_live(index, tracked)
        self._notify(CollectionChangedEvent.added(tracked, index))

    def __setitem__(self, index, value: Any) -> None:
        """Replace the member at storage index; the displaced member is removed."""
        if isinstance(index, slice):
            raise TypeError("TrackedCollection does not support slice assignment")
        index = self._normalize(index)
        old = self._items[index]
        new = self._wrap(value, ChangeStatus.ADDED)
        if new is old:
            return
        get_tracker(new)._ensure_alive()
        if new in self:
            raise InvalidStateError(f"{new!r} is already a member of the collection")

        with self.suppress_notifications():
            self._delete_at(index)
            self.insert(index, new)
        self._notify(CollectionChangedEvent.replaced(new, old, index))

    def __delitem__(self, index) -> None:
        if isinstance(index, slice):
            for i in sorted(range(*index.indices(len(self._items))), reverse=True):
                self._delete_at(i)
            return
        self._delete_at(self._normalize(index))

    def remove_at(self, index: int) -> None:
        """Remove the member at storage index (same path as ``del collection[index]``)."""
        del self[index]

    def clear(self) -> None:
        """Remove every member with a single RESET notification."""
        with self.suppress_notifications():
            while self._items:
                self._delete_at(len(self._items) - 1)
        self.reset_bindings()

    def reverse(self) -> None:
        """Reverse storage order in place with a single RESET notification."""
        self._items.reverse()
        self._source.reverse()
        self.reset_bindings()

    # ==================== MEMBERSHIP INTERNALS ====================

    def _wrap(self, value: Any, status: ChangeStatus) -> Any:
        if isinstance(value, TrackedCollection):
            raise TypeError("A tracked collection cannot be a member of another tracked collection")
        return as_trackable(
            value,
            status,
            make_complex_properties_trackable=self._make_complex_properties_trackable,
            make_collection_properties_trackable=self._make_collection_properties_trackable,
            comparer=self._comparer,
            item_canceled=self._item_canceled,
        )

    def _normalize(self, index: int) -> int:
        size = len(self._items)
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError("TrackedCollection index out of range")
        return index

    def _clamp(self, index: int) -> int:
        size = len(self._items)
        if index < 0:
            index = max(index + size, 0)
        return min(index, size)

    def _find_pending(self, item: Any) -> Optional[_PendingDelete]:
        for record in self._pending:
            if record.item is item:
                return record
        return None

    def _members(self) -> Iterator[Any]:
        yield from self._items
        for record in self._pending:
            yield record.item

    def _insert_live(self, index: int, item: Any) -> None:
        self._items.insert(index, item)
        self._source.insert(index, unwrap(item))
        get_tracker(item)._attach(self)
        self._hook(item)
        self._view = None

    def _take_live(self, index: int) -> Any:
        item = self._items.pop(index)
        del self._source[index]
        self._unhook(item)
        self._view = None
        return item

    def _delete_at(self, index: int) -> None:
        item = self._items[index]
        if self._on_delete is not None:
            self._on_delete(item)
        self._take_live(index)

        tracker = get_tracker(item)
        if tracker.base_status is ChangeStatus.ADDED and id(item) not in self._baseline:
            tracker._detach(self)
        else:
            self._pending.append(_PendingDelete(item, index))
            tracker._mark_deleted()
        logger.debug(f"Removed {self._type_name()} item at {index}")
        self._notify(CollectionChangedEvent.removed(item, index))

    # Hooks called by ObjectTracker so every owner reacts to a member's lifecycle

    def _remove_member(self, item: Any) -> None:
        """Delete item through the normal removal path if it is live here."""
        for index, member in enumerate(self._items):
            if member is item:
                self._delete_at(index)
                return

    def _accept_deleted(self, item: Any) -> None:
        record = self._find_pending(item)
        if record is not None:
            self._pending.remove(record)
        self._baseline.pop(id(item), None)

    def _forget_deleted(self, item: Any) -> None:
        """Drop the pending delete record of item and stop owning it."""
        record = self._find_pending(item)
        if record is not None:
            self._pending.remove(record)
        get_tracker(item)._detach(self)

    def _restore_deleted(self, item: Any) -> None:
        record = self._find_pending(item)
        if record is None:
            return
        self._pending.remove(record)
        index = min(record.index, len(self._items))
        self._insert_live(index, item)
        self._notify(CollectionChangedEvent.added(item, index))

    def _discard_live(self, item: Any) -> None:
        """Drop a rejected or cancelled new item without recording a delete.

        Wrap-time members stay: rejecting them only reverts their values.
        """
        if id(item) in self._baseline:
            return
        for index, member in enumerate(self._items):
            if member is item:
                self._take_live(index)
                get_tracker(item)._detach(self)
                self._notify(CollectionChangedEvent.removed(item, index))
                return

    # ==================== SORTING ====================

    def sort(
        self,
        property_name: Optional[str] = None,
        direction: SortDirection = SortDirection.ASCENDING,
        *,
        key: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        """Sort the iteration view by a member property or a key function.

        Stable; None values sort first ascending. Storage order is untouched.

        Raises:
            InvalidStateError: members do not have property_name.
        """
        if key is None:
            if property_name is None:
                raise ValueError("sort() needs a property_name or a key")
            self._check_sort_property(property_name)

            def key(item: Any, _name: str = property_name) -> Any:
                value = getattr(unwrap(item), _name, None)
                return (value is not None, value)

        self._sort_property = property_name
        self._sort_direction = direction
        self._sort_key = key
        with self.suppress_notifications():
            self._view = None
            self._ordered()
        logger.debug(f"Sorted {self._type_name()} collection by {property_name or key!r} {direction.name}")
        self.reset_bindings()

    def clear_sort(self) -> None:
        """Restore insertion order for iteration."""
        self._sort_property = None
        self._sort_direction = SortDirection.ASCENDING
        self._sort_key = None
        self.reset_bindings()

    def _check_sort_property(self, name: str) -> None:
        if self._items:
            missing = [item for item in self._items if not hasattr(unwrap(item), name)]
            if missing:
                raise InvalidStateError(f"Cannot sort by '{name}': {missing[0]!r} has no such property")
        elif self._item_type is not None and not _type_has_property(self._item_type, name):
            raise InvalidStateError(f"Cannot sort by '{name}': {self._item_type.__name__} has no such property")

    def _ordered(self) -> List[Any]:
        if self._sort_key is None:
            return self._items
        if self._view is None:
            self._view = sorted(
                self._items,
                key=self._sort_key,
                reverse=self._sort_direction is SortDirection.DESCENDING,
            )
        return self._view

    # ==================== PARTITIONS ====================

    def added_items(self) -> StatusView:
        return StatusView(self, frozenset({ChangeStatus.ADDED}))

    def modified_items(self) -> StatusView:
        return StatusView(self, frozenset({ChangeStatus.MODIFIED}))

    def unchanged_items(self) -> StatusView:
        return StatusView(self, frozenset({ChangeStatus.UNCHANGED}))

    def deleted_items(self) -> StatusView:
        return StatusView(self, frozenset({ChangeStatus.DELETED}))

    def changed_items(self) -> StatusView:
        """ADDED and MODIFIED members."""
        return StatusView(self, frozenset({ChangeStatus.ADDED, ChangeStatus.MODIFIED}))

    # ==================== ACCEPT / REJECT ====================

    def has_changes(self, _seen: Optional[Set[int]] = None) -> bool:
        return self._has_changes(_seen if _seen is not None else set())

    def _has_changes(self, seen: Set[int]) -> bool:
        if id(self) in seen:
            return False
        seen.add(id(self))
        if self._pending:
            return True
        return any(get_tracker(item)._compute_status(seen) is not ChangeStatus.UNCHANGED for item in self._items)

    def accept_all(self, _seen: Optional[Set[int]] = None) -> None:
        """Accept every member; pending deletes are released."""
        seen = _seen if _seen is not None else set()
        if id(self) in seen:
            return
        seen.add(id(self))

        for record in list(self._pending):
            tracker = get_tracker(record.item)
            if not tracker.is_released:
                tracker.accept_changes(_seen=seen)
        for item in list(self._items):
            get_tracker(item).accept_changes(_seen=seen)
        self._baseline = {id(item): item for item in self._items}
        logger.debug(f"Accepted all changes in {self._type_name()} collection")

    def reject_all(self, _seen: Optional[Set[int]] = None) -> None:
        """Reject every member: new items leave, deleted items come back."""
        seen = _seen if _seen is not None else set()
        if id(self) in seen:
            return
        seen.add(id(self))

        with self.suppress_notifications():
            for item in list(self._items):
                get_tracker(item).reject_changes(_seen=seen)
            # Most recent delete first so recorded indices stay valid
            for record in reversed(list(self._pending)):
                tracker = get_tracker(record.item)
                if not tracker.is_released:
                    tracker.reject_changes(_seen=seen)
        logger.debug(f"Rejected all changes in {self._type_name()} collection")
        self.reset_bindings()

    # ==================== ADD NEW ====================

    def add_new(self, factory: Optional[Callable[[], Any]] = None) -> Any:
        """Create, wrap as ADDED and append a new item inside an edit session.

        Cancelling the item's edit session (get_tracker(item).cancel_edit())
        removes it again.

        Raises:
            InvalidStateError: no factory given and the item type is unknown.
        """
        if factory is None:
            if self._item_type is None:
                raise InvalidStateError("add_new() needs a factory when the item type is unknown")
            factory = self._item_type
        item = self._wrap(factory(), ChangeStatus.ADDED)
        get_tracker(item).begin_edit()
        self.append(item)
        return item

    # ==================== NOTIFICATION ====================

    def on_collection_changed(self, callback: CollectionChangedCallback) -> None:
        """Subscribe to structural changes; callback receives (collection, event)."""
        if callback not in self._on_collection_changed_callbacks:
            self._on_collection_changed_callbacks.append(callback)

    def off_collection_changed(self, callback: CollectionChangedCallback) -> None:
        if callback in self._on_collection_changed_callbacks:
            self._on_collection_changed_callbacks.remove(callback)

    def on_item_changed(self, callback: ItemChangedCallback) -> None:
        """Subscribe to member property changes; callback receives (collection, item, property_name)."""
        if callback not in self._on_item_changed_callbacks:
            self._on_item_changed_callbacks.append(callback)

    def off_item_changed(self, callback: ItemChangedCallback) -> None:
        if callback in self._on_item_changed_callbacks:
            self._on_item_changed_callbacks.remove(callback)

    @contextmanager
    def suppress_notifications(self) -> Generator[None, None, None]:
        """Silence collection and item notifications; pair with reset_bindings()."""
        previous = self._notifications_enabled
        self._notifications_enabled = False
        try:
            yield
        finally:
            self._notifications_enabled = previous

    def reset_bindings(self) -> None:
        """Tell observers to re-read the whole collection."""
        self._view = None
        self._notify(CollectionChangedEvent.reset())

    def _hook(self, item: Any) -> None:
        get_tracker(item).on_property_changed(self._on_member_property_changed)

    def _unhook(self, item: Any) -> None:
        get_tracker(item).off_property_changed(self._on_member_property_changed)

    def _on_member_property_changed(self, item: Any, property_name: str) -> None:
        if self._sort_key is not None:
            self._view = None
        if not (self._raise_item_changed_events and self._notifications_enabled):
            return
        for callback in list(self._on_item_changed_callbacks):
            try:
                callback(self, item, property_name)
            except Exception as e:
                logger.warning(f"Error in item_changed callback for '{property_name}': {e}")

    def _notify(self, event: CollectionChangedEvent) -> None:
        """Fire collection changed callbacks (best-effort)."""
        if not self._notifications_enabled:
            return
        for callback in list(self._on_collection_changed_callbacks):
            try:
                callback(self, event)
            except Exception as e:
                logger.warning(f"Error in collection_changed callback for {event.kind.name}: {e}")


def as_trackable_collection(
    items: Iterable[Any],
    on_delete: Optional[Callable[[Any], None]] = None,
    item_type: Optional[Type] = None,
    make_complex_properties_trackable: Optional[bool] = None,
    make_collection_properties_trackable: Optional[bool] = None,
    comparer: Optional[Comparer] = None,
    raise_item_changed_events: Optional[bool] = None,
    item_canceled: Optional[Callable[[Any], None]] = None,
) -> TrackedCollection:
    """Wrap a sequence of plain objects in a TrackedCollection.

    Existing elements become UNCHANGED members. A list argument is adopted as
    the collection's source and kept in sync. item_canceled is handed to every
    element the collection wraps and is called when the edit session of a new
    element (see add_new()) is cancelled.
    """
    if isinstance(items, TrackedCollection):
        return items
    return TrackedCollection(
        items,
        on_delete=on_delete,
        item_type=item_type,
        make_complex_properties_trackable=make_complex_properties_trackable,
        make_collection_properties_trackable=make_collection_properties_trackable,
        comparer=comparer,
        raise_item_changed_events=raise_item_changed_events,
        item_canceled=item_canceled,
    )
