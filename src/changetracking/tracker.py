"""
ObjectTracker: the interception handler behind every tracked instance.

Lifecycle:
- Created by as_trackable() (explicitly, by cascading from a parent property
  read, or when a collection receives a plain element)
- Every non-dunder attribute access of the proxy lands in on_get/on_set/on_delete
- accept_changes() commits, reject_changes() rolls back, delete() marks DELETED
- Accepting a deletion releases the instance; later property access raises
  StaleReferenceError

Core attributes:
- _seed: the plain object; the single store of attribute values
- _ledger: originals and dirtiness per property
- _children: cascaded wrappers, keyed by property and plain-object identity
- _owners: tracked collections holding the instance (weak)

Everything else is derived:
- status → ledger base status, MODIFIED when the ledger or a live child has changes
- changed_properties → dirty ledger entries + properties holding changed children
"""
import copy
import inspect
import logging
import types
import typing
import weakref
from collections.abc import MutableSequence, Sequence
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple, Type

from changetracking.config import get_tracking_config
from changetracking.errors import InvalidStateError, StaleReferenceError
from changetracking.events import PropertyChangedCallback
from changetracking.ledger import ABSENT, ChangeLedger, Comparer, LedgerEntry
from changetracking.proxy_factory import (
    ChangeTrackable,
    InterceptionHandler,
    create_proxy,
    get_handler,
    is_proxyable,
)
from changetracking.status import ChangeStatus

logger = logging.getLogger(__name__)

# Per-class cache of resolved type hints (used to find list item types)
_type_hint_cache: Dict[Type, Dict[str, Any]] = {}

_LIST_ORIGINS = (list, MutableSequence, Sequence)


def _is_data_descriptor(attr: Any) -> bool:
    attr_type = type(attr)
    return hasattr(attr_type, '__set__') or hasattr(attr_type, '__delete__')


def _get_type_hints(cls: Type) -> Dict[str, Any]:
    hints = _type_hint_cache.get(cls)
    if hints is None:
        try:
            hints = typing.get_type_hints(cls)
        except (NameError, TypeError) as e:
            # Unresolvable forward references: fall back to content sniffing
            logger.debug(f"Type hints unavailable for {cls.__qualname__}: {e}")
            hints = {}
        _type_hint_cache[cls] = hints
    return hints


def _list_item_type(hint: Any) -> Optional[Type]:
    """Item type of List[X] / Optional[List[X]] annotations, if trackable."""
    origin = typing.get_origin(hint)
    if origin is typing.Union:
        args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        if len(args) != 1:
            return None
        return _list_item_type(args[0])
    if origin not in _LIST_ORIGINS:
        return None
    args = typing.get_args(hint)
    if len(args) == 1 and isinstance(args[0], type) and is_proxyable(args[0]):
        return args[0]
    return None


def _is_complex_value(value: Any) -> bool:
    """True for values that cascade into their own tracker."""
    return is_proxyable(type(value))


class ObjectTracker(InterceptionHandler):
    """Change tracking handler for one plain object.

    Thread safety: Not thread-safe (callers serialize access per instance).
    """

    def __init__(
        self,
        seed: Any,
        status: ChangeStatus = ChangeStatus.UNCHANGED,
        on_delete: Optional[Callable[[Any], None]] = None,
        item_canceled: Optional[Callable[[Any], None]] = None,
        make_complex_properties_trackable: bool = True,
        make_collection_properties_trackable: bool = True,
        comparer: Optional[Comparer] = None,
    ):
        """
        Args:
            seed: The plain object to track. Attribute values live here.
            status: Initial status (UNCHANGED or ADDED).
            on_delete: Called with the proxy when delete() is invoked.
            item_canceled: Called with the proxy when an edit session of a
                           new (ADDED) instance is cancelled.
            make_complex_properties_trackable: Cascade into nested objects.
            make_collection_properties_trackable: Cascade into list properties.
            comparer: Equality policy for dirtiness.
        """
        self._seed = seed
        self._proxy: Any = None
        self._ledger = ChangeLedger(status, comparer)
        self._on_delete = on_delete
        self._item_canceled = item_canceled
        self._make_complex_properties_trackable = make_complex_properties_trackable
        self._make_collection_properties_trackable = make_collection_properties_trackable

        # property name → {id(plain value): (plain value, tracked wrapper, relay callback)}
        self._children: Dict[str, Dict[int, Tuple[Any, Any, Callable[..., None]]]] = {}

        self._owners: 'weakref.WeakSet' = weakref.WeakSet()
        self._pre_delete_status: Optional[ChangeStatus] = None
        self._released = False

        # property name → (value before the edit session, ledger entry before it)
        self._edit_snapshot: Optional[Dict[str, Tuple[Any, Optional[LedgerEntry]]]] = None

        self._on_property_changed_callbacks: List[PropertyChangedCallback] = []

    def _bind(self, proxy: Any) -> None:
        self._proxy = proxy

    # ==================== ACCESSORS ====================

    @property
    def seed(self) -> Any:
        """The plain object behind the proxy."""
        return self._seed

    @property
    def proxy(self) -> Any:
        return self._proxy

    @property
    def ledger(self) -> ChangeLedger:
        return self._ledger

    @property
    def status(self) -> ChangeStatus:
        return self._compute_status(set())

    @property
    def base_status(self) -> ChangeStatus:
        return self._ledger.base_status

    @property
    def is_released(self) -> bool:
        return self._released

    @property
    def is_editing(self) -> bool:
        return self._edit_snapshot is not None

    @property
    def owners(self) -> List[Any]:
        """Tracked collections currently holding this instance."""
        return list(self._owners)

    def _describe(self) -> str:
        return f"{type(self._seed).__name__}@{id(self._seed):#x}"

    def _ensure_alive(self) -> None:
        if self._released:
            raise StaleReferenceError(
                f"{self._describe()} was released when its deletion was accepted"
            )

    def __repr__(self) -> str:
        return f"ObjectTracker({self._describe()}, status={self.status.name})"

    # ==================== INTERCEPTION ====================

    def _is_storage_attribute(self, name: str) -> bool:
        """True if name is held by the plain object itself (instance dict or slot)."""
        try:
            seed_dict = object.__getattribute__(self._seed, '__dict__')
        except AttributeError:
            seed_dict = None
        if seed_dict is not None and name in seed_dict:
            return True
        return isinstance(inspect.getattr_static(type(self._seed), name, None), types.MemberDescriptorType)

    def _class_data_descriptor(self, name: str) -> bool:
        """True for properties and other data descriptors that are not slots."""
        attr = inspect.getattr_static(type(self._seed), name, None)
        return _is_data_descriptor(attr) and not isinstance(attr, types.MemberDescriptorType)

    def on_get(self, proxy: Any, name: str) -> Any:
        self._ensure_alive()
        if self._is_storage_attribute(name):
            return self._track_nested(name, getattr(self._seed, name))
        # Methods, properties and class attributes bind to the proxy, so the
        # attribute accesses inside them are intercepted too
        return object.__getattribute__(proxy, name)

    def on_set(self, proxy: Any, name: str, value: Any) -> None:
        self._ensure_alive()
        if self._class_data_descriptor(name):
            object.__setattr__(proxy, name, value)
            self._notify_property_changed(name)
            return
        self._write(name, value)

    def on_delete(self, proxy: Any, name: str) -> None:
        self._ensure_alive()
        if self._class_data_descriptor(name):
            object.__delattr__(proxy, name)
            self._notify_property_changed(name)
            return
        if self._read_raw(name) is ABSENT:
            raise AttributeError(f"'{type(self._seed).__name__}' object has no attribute '{name}'")
        self._write(name, ABSENT)

    def plain_copy(self, deep: bool, memo: Any = None) -> Any:
        if deep:
            return copy.deepcopy(self._seed, memo)
        return copy.copy(self._seed)

    def _read_raw(self, name: str) -> Any:
        return getattr(self._seed, name, ABSENT)

    def _apply(self, name: str, value: Any) -> None:
        if value is ABSENT:
            if self._is_storage_attribute(name):
                delattr(self._seed, name)
        else:
            setattr(self._seed, name, value)

    def _write(self, name: str, value: Any) -> None:
        """Store value on the plain object and record it in the ledger."""
        tracked = value if is_trackable(value) else None
        plain = unwrap(value)

        prior = self._read_raw(name)
        entry_before = self._ledger.entry(name)
        # Write first: a failing setattr leaves the ledger untouched
        self._apply(name, plain)

        if self._edit_snapshot is not None and name not in self._edit_snapshot:
            self._edit_snapshot[name] = (prior, copy.copy(entry_before) if entry_before else None)
        entry = self._ledger.record_write(name, plain, prior)
        if tracked is not None:
            self._cache_child(name, plain, tracked)

        logger.debug(f"Write {self._describe()}.{name}: dirty={entry.is_dirty}")
        self._notify_property_changed(name)

    # ==================== CASCADING ====================

    def _child_status(self) -> ChangeStatus:
        if self._ledger.base_status is ChangeStatus.ADDED:
            return ChangeStatus.ADDED
        return ChangeStatus.UNCHANGED

    def _track_nested(self, name: str, value: Any) -> Any:
        """Return the cached or newly created wrapper for a nested value."""
        if is_trackable(value):
            return value
        by_identity = self._children.get(name)
        if by_identity:
            cached = by_identity.get(id(value))
            if cached is not None and cached[0] is value:
                return cached[1]
        tracked = self._make_child(name, value)
        if tracked is None:
            return value
        self._cache_child(name, value, tracked)
        return tracked

    def _make_child(self, name: str, value: Any) -> Any:
        from changetracking.collection import TrackedCollection

        if isinstance(value, list):
            if not self._make_collection_properties_trackable:
                return None
            item_type = _list_item_type(_get_type_hints(type(self._seed)).get(name))
            if item_type is None and not (value and all(_is_complex_value(v) or is_trackable(v) for v in value)):
                return None
            logger.debug(f"Cascading collection property {self._describe()}.{name}")
            return TrackedCollection(
                value,
                status=self._child_status(),
                item_type=item_type,
                make_complex_properties_trackable=self._make_complex_properties_trackable,
                make_collection_properties_trackable=self._make_collection_properties_trackable,
                comparer=self._ledger.comparer,
            )

        if self._make_complex_properties_trackable and _is_complex_value(value):
            logger.debug(f"Cascading complex property {self._describe()}.{name}")
            return as_trackable(
                value,
                self._child_status(),
                make_complex_properties_trackable=self._make_complex_properties_trackable,
                make_collection_properties_trackable=self._make_collection_properties_trackable,
                comparer=self._ledger.comparer,
            )
        return None

    def _cache_child(self, name: str, plain: Any, tracked: Any) -> None:
        by_identity = self._children.setdefault(name, {})
        cached = by_identity.get(id(plain))
        if cached is not None and cached[0] is plain and cached[1] is tracked:
            return
        if cached is not None:
            _unhook_child(cached[1], cached[2])

        def relay(*_args: Any) -> None:
            self._notify_property_changed(name)

        _hook_child(tracked, relay)
        by_identity[id(plain)] = (plain, tracked, relay)

    def _live_children(self) -> Iterator[Tuple[str, Any]]:
        """(property, wrapper) pairs whose plain value is still held by the property."""
        for name, by_identity in self._children.items():
            current = self._read_raw(name)
            cached = by_identity.get(id(current))
            if cached is not None and cached[0] is current:
                yield name, cached[1]

    def _all_children(self) -> List[Any]:
        return [cached[1] for by_identity in self._children.values() for cached in by_identity.values()]

    def _prune_children(self) -> None:
        """Forget wrappers whose plain value the property no longer holds."""
        for name in list(self._children):
            current = self._read_raw(name)
            by_identity = self._children[name]
            for key in list(by_identity):
                plain, tracked, relay = by_identity[key]
                if plain is not current:
                    _unhook_child(tracked, relay)
                    del by_identity[key]
            if not by_identity:
                del self._children[name]

    # ==================== STATUS ====================

    def _compute_status(self, seen: Set[int]) -> ChangeStatus:
        base = self._ledger.base_status
        if base not in (ChangeStatus.UNCHANGED, ChangeStatus.MODIFIED):
            return base
        return ChangeStatus.MODIFIED if self._has_changes(seen) else ChangeStatus.UNCHANGED

    def has_changes(self) -> bool:
        return self._has_changes(set())

    def _has_changes(self, seen: Set[int]) -> bool:
        if id(self) in seen:
            return False
        seen.add(id(self))
        if self._ledger.has_changes():
            return True
        return any(_child_has_changes(child, seen) for _, child in self._live_children())

    @property
    def changed_properties(self) -> Set[str]:
        """Dirty properties plus properties holding changed tracked children."""
        names = self._ledger.dirty_properties()
        for name, child in self._live_children():
            if _child_has_changes(child, {id(self)}):
                names.add(name)
        return names

    def is_dirty(self, name: str) -> bool:
        return name in self.changed_properties

    def original_value(self, name: str) -> Any:
        """Value of name at wrap time or last accept."""
        entry = self._ledger.entry(name)
        if entry is None:
            value = self._read_raw(name)
        else:
            value = entry.original
        if value is ABSENT:
            raise AttributeError(f"'{type(self._seed).__name__}' object had no attribute '{name}'")
        return value

    def get_original(self) -> Any:
        """Plain shallow copy of the object holding its original values."""
        original = copy.copy(self._seed)
        for name, value in self._ledger.pending_reverts().items():
            if value is ABSENT:
                if hasattr(original, name):
                    delattr(original, name)
            else:
                setattr(original, name, value)
        return original

    # ==================== ACCEPT / REJECT ====================

    def accept_changes(self, _seen: Optional[Set[int]] = None) -> None:
        """Commit pending changes here and in every nested wrapper.

        For a DELETED instance this is the point of physical removal: it
        leaves every owning collection and is released.
        """
        self._ensure_alive()
        seen = _seen if _seen is not None else set()
        if id(self) in seen:
            return
        seen.add(id(self))

        if self._ledger.base_status is ChangeStatus.DELETED:
            self._ledger.accept()
            for owner in list(self._owners):
                owner._accept_deleted(self._proxy)
            self._owners = weakref.WeakSet()
            for by_identity in self._children.values():
                for _, tracked, relay in by_identity.values():
                    _unhook_child(tracked, relay)
            self._children.clear()
            self._edit_snapshot = None
            self._released = True
            logger.debug(f"Accepted deletion of {self._describe()}; instance released")
            return

        for _, child in list(self._live_children()):
            _accept_child(child, seen)
        self._prune_children()
        committed = self._ledger.accept()
        self._edit_snapshot = None
        self._pre_delete_status = None
        logger.debug(f"Accepted changes on {self._describe()}: {sorted(committed)}")

    def reject_changes(self, _seen: Optional[Set[int]] = None) -> None:
        """Restore original values and the pre-change status.

        ADDED instances leave the collections they were inserted into (members
        a collection held when it was wrapped stay); DELETED instances return
        to their pre-delete status and to their owning collections.
        """
        self._ensure_alive()
        seen = _seen if _seen is not None else set()
        if id(self) in seen:
            return
        seen.add(id(self))

        prior_status = self._ledger.base_status
        reverts = self._ledger.pending_reverts()
        self._restore_values(reverts)
        self._ledger.clear()
        self._edit_snapshot = None

        for child in self._all_children():
            _reject_child(child, seen)
        self._prune_children()

        if prior_status is ChangeStatus.ADDED:
            for owner in list(self._owners):
                owner._discard_live(self._proxy)
        elif prior_status is ChangeStatus.DELETED:
            self._restore_pre_delete_status()
            for owner in list(self._owners):
                owner._restore_deleted(self._proxy)
        else:
            self._ledger.set_status(ChangeStatus.UNCHANGED)

        logger.debug(f"Rejected changes on {self._describe()}: {sorted(reverts)}")
        for name in reverts:
            self._notify_property_changed(name)

    def _restore_values(self, values: Dict[str, Any]) -> None:
        """Apply values to the plain object; all or nothing."""
        applied: List[Tuple[str, Any]] = []
        try:
            for name, value in values.items():
                current = self._read_raw(name)
                self._apply(name, value)
                applied.append((name, current))
        except Exception:
            for name, current in reversed(applied):
                self._apply(name, current)
            raise

    def _restore_pre_delete_status(self) -> None:
        if self._pre_delete_status is ChangeStatus.ADDED:
            self._ledger.set_status(ChangeStatus.ADDED)
        else:
            self._ledger.set_status(ChangeStatus.UNCHANGED)
        self._pre_delete_status = None

    # ==================== DELETION ====================

    def delete(self) -> None:
        """Mark the instance DELETED.

        Owning collections drop it from their live sequence through the same
        path as ``del collection[index]``. A newly ADDED instance is simply
        discarded from its owners.
        """
        self._ensure_alive()
        if self._ledger.base_status is ChangeStatus.DELETED:
            raise InvalidStateError(f"{self._describe()} is already deleted")
        if self._on_delete is not None:
            self._on_delete(self._proxy)

        owners = list(self._owners)
        for owner in owners:
            owner._remove_member(self._proxy)
        if not owners:
            self._mark_deleted()

    def _mark_deleted(self) -> None:
        if self._ledger.base_status is ChangeStatus.DELETED:
            return
        self._pre_delete_status = self._ledger.status
        self._ledger.set_status(ChangeStatus.DELETED)
        self._edit_snapshot = None
        logger.debug(f"Marked {self._describe()} deleted (was {self._pre_delete_status.name})")
        for owner in list(self._owners):
            owner._remove_member(self._proxy)

    def _undelete(self) -> None:
        """Return a DELETED instance to its pre-delete status (re-insertion into a collection)."""
        if self._ledger.base_status is not ChangeStatus.DELETED:
            return
        self._restore_pre_delete_status()
        logger.debug(f"Undeleted {self._describe()} ({self._ledger.base_status.name})")

    def _attach(self, owner: Any) -> None:
        self._owners.add(owner)

    def _detach(self, owner: Any) -> None:
        self._owners.discard(owner)

    # ==================== EDIT SESSIONS ====================

    def begin_edit(self) -> None:
        """Start an edit session; cancel_edit() reverts writes made after this point."""
        self._ensure_alive()
        if self._edit_snapshot is None:
            self._edit_snapshot = {}

    def end_edit(self) -> None:
        """Keep the writes of the current edit session."""
        self._edit_snapshot = None

    def cancel_edit(self) -> None:
        """Revert the writes of the current edit session.

        Cancelling the session of a new (ADDED) instance also removes it from
        its owning collections and calls item_canceled.
        """
        snapshot = self._edit_snapshot
        if snapshot is None:
            return
        self._ensure_alive()
        self._restore_values({name: prior for name, (prior, _) in snapshot.items()})
        self._edit_snapshot = None
        for name, (_, entry) in snapshot.items():
            self._ledger.restore_entry(name, entry)
        self._prune_children()
        for name in snapshot:
            self._notify_property_changed(name)

        if self._ledger.base_status is ChangeStatus.ADDED:
            for owner in list(self._owners):
                owner._discard_live(self._proxy)
            if self._item_canceled is not None:
                self._item_canceled(self._proxy)

    # ==================== NOTIFICATION ====================

    def on_property_changed(self, callback: PropertyChangedCallback) -> None:
        """Subscribe to property changes; callback receives (instance, property_name)."""
        if callback not in self._on_property_changed_callbacks:
            self._on_property_changed_callbacks.append(callback)

    def off_property_changed(self, callback: PropertyChangedCallback) -> None:
        """Unsubscribe from property changes."""
        if callback in self._on_property_changed_callbacks:
            self._on_property_changed_callbacks.remove(callback)

    def _notify_property_changed(self, name: str) -> None:
        """Fire property changed callbacks (best-effort)."""
        for callback in list(self._on_property_changed_callbacks):
            try:
                callback(self._proxy, name)
            except Exception as e:
                logger.warning(f"Error in property_changed callback for {self._describe()}.{name}: {e}")


# ==================== CHILD HELPERS ====================

def _hook_child(tracked: Any, relay: Callable[..., None]) -> None:
    from changetracking.collection import TrackedCollection

    if isinstance(tracked, TrackedCollection):
        tracked.on_collection_changed(relay)
        tracked.on_item_changed(relay)
    else:
        get_handler(tracked).on_property_changed(relay)


def _unhook_child(tracked: Any, relay: Callable[..., None]) -> None:
    from changetracking.collection import TrackedCollection

    if isinstance(tracked, TrackedCollection):
        tracked.off_collection_changed(relay)
        tracked.off_item_changed(relay)
    else:
        get_handler(tracked).off_property_changed(relay)


def _child_has_changes(child: Any, seen: Set[int]) -> bool:
    from changetracking.collection import TrackedCollection

    if isinstance(child, TrackedCollection):
        return child._has_changes(seen)
    return get_handler(child)._compute_status(seen) is not ChangeStatus.UNCHANGED


def _accept_child(child: Any, seen: Set[int]) -> None:
    from changetracking.collection import TrackedCollection

    if isinstance(child, TrackedCollection):
        child.accept_all(_seen=seen)
        return
    tracker = get_handler(child)
    if not tracker.is_released:
        tracker.accept_changes(_seen=seen)


def _reject_child(child: Any, seen: Set[int]) -> None:
    from changetracking.collection import TrackedCollection

    if isinstance(child, TrackedCollection):
        child.reject_all(_seen=seen)
        return
    tracker = get_handler(child)
    if not tracker.is_released:
        tracker.reject_changes(_seen=seen)


# ==================== PUBLIC API ====================

def as_trackable(
    value: Any,
    status: ChangeStatus = ChangeStatus.UNCHANGED,
    on_delete: Optional[Callable[[Any], None]] = None,
    item_canceled: Optional[Callable[[Any], None]] = None,
    make_complex_properties_trackable: Optional[bool] = None,
    make_collection_properties_trackable: Optional[bool] = None,
    comparer: Optional[Comparer] = None,
) -> Any:
    """Wrap a plain object in a change-tracking proxy.

    Already tracked values are returned unchanged. Options left as None come
    from the active TrackingConfig.

    Raises:
        UnsupportedTypeError: the object's type cannot be proxied.
        ValueError: status is neither UNCHANGED nor ADDED.
    """
    from changetracking.collection import TrackedCollection

    if isinstance(value, (ChangeTrackable, TrackedCollection)):
        return value
    if status not in (ChangeStatus.UNCHANGED, ChangeStatus.ADDED):
        raise ValueError(f"Tracked instances start UNCHANGED or ADDED, got {status.name}")

    config = get_tracking_config()
    if make_complex_properties_trackable is None:
        make_complex_properties_trackable = config.make_complex_properties_trackable
    if make_collection_properties_trackable is None:
        make_collection_properties_trackable = config.make_collection_properties_trackable
    if comparer is None:
        comparer = config.comparer

    tracker = ObjectTracker(
        value,
        status,
        on_delete=on_delete,
        item_canceled=item_canceled,
        make_complex_properties_trackable=make_complex_properties_trackable,
        make_collection_properties_trackable=make_collection_properties_trackable,
        comparer=comparer,
    )
    proxy = create_proxy(value, tracker)
    tracker._bind(proxy)
    logger.debug(f"Tracking {tracker._describe()} as {status.name}")
    return proxy


def is_trackable(value: Any) -> bool:
    """True for tracked instances and tracked collections."""
    from changetracking.collection import TrackedCollection

    return isinstance(value, (ChangeTrackable, TrackedCollection))


def get_tracker(instance: Any) -> ObjectTracker:
    """Return the ObjectTracker of a tracked instance."""
    handler = get_handler(instance)
    if not isinstance(handler, ObjectTracker):
        raise TypeError(f"{type(instance).__qualname__} proxy is not change tracked")
    return handler


def unwrap(value: Any) -> Any:
    """Plain object behind a tracked instance or plain list behind a tracked collection."""
    from changetracking.collection import TrackedCollection

    if isinstance(value, ChangeTrackable):
        return get_tracker(value).seed
    if isinstance(value, TrackedCollection):
        return value.source
    return value


def get_status(instance: Any) -> ChangeStatus:
    return get_tracker(instance).status


def get_changed_properties(instance: Any) -> Set[str]:
    return get_tracker(instance).changed_properties


def get_original_value(instance: Any, property_name: str) -> Any:
    return get_tracker(instance).original_value(property_name)


def get_original(instance: Any) -> Any:
    return get_tracker(instance).get_original()


def accept_changes(instance: Any) -> None:
    get_tracker(instance).accept_changes()


def reject_changes(instance: Any) -> None:
    get_tracker(instance).reject_changes()


def delete(instance: Any) -> None:
    get_tracker(instance).delete()
