"""
Change ledger: per-instance record of original values and dirtiness.

The ledger is pure data plus an equality policy. It never touches the tracked
object itself; ObjectTracker feeds it the plain values it reads and writes.

Dirty rule:
    A property is dirty iff its current value differs (by the comparer) from
    the value it held at wrap time or at the last accept. Intermediate writes
    never replace the recorded original.
"""
import copy
import dataclasses
import datetime
import fractions
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any, Callable, Dict, Optional, Set

from changetracking.status import ChangeStatus

logger = logging.getLogger(__name__)


class _Absent:
    """Sentinel type for 'property did not exist'."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return '<absent>'

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _Absent()

Comparer = Callable[[Any, Any], bool]

# Types compared structurally; everything else is compared by identity.
VALUE_TYPES = (
    type(None), bool, int, float, complex, str, bytes,
    Decimal, fractions.Fraction,
    datetime.date, datetime.time, datetime.timedelta, datetime.tzinfo,
    uuid.UUID, Enum, PurePath, range,
    tuple, frozenset,
    _Absent,
)


def is_value_type(value: Any) -> bool:
    """True for values compared by equality rather than identity."""
    if isinstance(value, VALUE_TYPES):
        return True
    params = getattr(type(value), '__dataclass_params__', None)
    return params is not None and params.frozen


def default_comparer(original: Any, current: Any) -> bool:
    """Default equality policy for dirtiness.

    Structural equality for primitives, strings, dates and other value types,
    reference identity otherwise.
    """
    if original is current:
        return True
    if is_value_type(original) and is_value_type(current):
        return bool(original == current)
    return False


@dataclass
class LedgerEntry:
    """Original/current pair for one property."""
    original: Any
    current: Any
    is_dirty: bool = False


class ChangeLedger:
    """Per-instance change record.

    Status handling: the stored status is the lifecycle base. When it is
    UNCHANGED or MODIFIED the reported status is derived from the entries,
    so writing an original value back returns the instance to UNCHANGED.
    """

    def __init__(self, status: ChangeStatus = ChangeStatus.UNCHANGED, comparer: Optional[Comparer] = None):
        self._status = status
        self._comparer: Comparer = comparer or default_comparer
        self._entries: Dict[str, LedgerEntry] = {}

    @property
    def comparer(self) -> Comparer:
        return self._comparer

    @property
    def status(self) -> ChangeStatus:
        if self._status in (ChangeStatus.UNCHANGED, ChangeStatus.MODIFIED):
            return ChangeStatus.MODIFIED if self.has_changes() else ChangeStatus.UNCHANGED
        return self._status

    @property
    def base_status(self) -> ChangeStatus:
        """Stored lifecycle status, without deriving MODIFIED from entries."""
        return self._status

    def set_status(self, status: ChangeStatus) -> None:
        if status is not self._status:
            logger.debug(f"Ledger status {self._status.name} -> {status.name}")
        self._status = status

    def record_write(self, property_name: str, new_value: Any, prior_value: Any = ABSENT) -> LedgerEntry:
        """Record a write of new_value over prior_value.

        prior_value only matters for the first write since wrap/accept; it
        becomes the entry's original.
        """
        entry = self._entries.get(property_name)
        if entry is None:
            entry = LedgerEntry(original=prior_value, current=new_value)
            self._entries[property_name] = entry
        else:
            entry.current = new_value
        entry.is_dirty = not self._comparer(entry.original, entry.current)
        return entry

    def is_dirty(self, property_name: str) -> bool:
        entry = self._entries.get(property_name)
        return entry is not None and entry.is_dirty

    def dirty_properties(self) -> Set[str]:
        return {name for name, entry in self._entries.items() if entry.is_dirty}

    def has_changes(self) -> bool:
        return any(entry.is_dirty for entry in self._entries.values())

    def snapshot_original(self, property_name: str) -> Any:
        """Original value of a written property, or ABSENT if never written."""
        entry = self._entries.get(property_name)
        return entry.original if entry is not None else ABSENT

    def entry(self, property_name: str) -> Optional[LedgerEntry]:
        return self._entries.get(property_name)

    def accept(self) -> Set[str]:
        """Commit: current values become the new originals.

        Returns the names that were dirty. ADDED/MODIFIED collapse to
        UNCHANGED; DELETED is left for the tracker to release.
        """
        committed = self.dirty_properties()
        self._entries.clear()
        if self._status is not ChangeStatus.DELETED:
            self._status = ChangeStatus.UNCHANGED
        return committed

    def pending_reverts(self) -> Dict[str, Any]:
        """Originals for every written property whose current value is not the original object."""
        return {
            name: entry.original
            for name, entry in self._entries.items()
            if entry.current is not entry.original
        }

    def clear(self) -> None:
        self._entries.clear()

    def restore_entry(self, property_name: str, entry: Optional[LedgerEntry]) -> None:
        """Put back an entry captured with entry(); None removes the entry."""
        if entry is None:
            self._entries.pop(property_name, None)
        else:
            self._entries[property_name] = copy.copy(entry)

    def __repr__(self) -> str:
        return f"ChangeLedger(status={self.status.name}, dirty={sorted(self.dirty_properties())})"


def is_frozen_dataclass_type(cls: type) -> bool:
    """True for dataclass types declared with frozen=True."""
    return dataclasses.is_dataclass(cls) and cls.__dataclass_params__.frozen
