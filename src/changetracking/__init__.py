"""
Change tracking for plain Python objects and lists.

Wrap an object and keep using it as before: every attribute write is recorded,
the instance reports whether it was added, modified or deleted, and changes can
be accepted or rolled back as a unit, including nested objects and lists.

Key Features:
- Tracked instances are real subclasses of the wrapped type (isinstance works)
- Per-property original values and dirtiness
- Lazy cascading into nested objects and typed lists
- Observable tracked collections with soft delete, sort view and status partitions
- Contextvars-based configuration overrides

Quick Start:
    >>> from changetracking import as_trackable, get_status, reject_changes
    >>> order = as_trackable(Order(customer="ACME"))
    >>> order.customer = "Initech"
    >>> get_status(order)
    <ChangeStatus.MODIFIED: 'modified'>
    >>> reject_changes(order)
    >>> order.customer
    'ACME'

    >>> from changetracking import as_trackable_collection
    >>> details = as_trackable_collection(order_details, on_delete=print)
    >>> details.insert(0, OrderDetail(product="Widget"))
    >>> len(details.added_items())
    1

Modules:
    - status: ChangeStatus and SortDirection
    - errors: exception hierarchy
    - ledger: per-instance original/current values and dirtiness
    - proxy_factory: runtime proxy subclasses routing member access to a handler
    - tracker: ObjectTracker and the instance-level API
    - collection: TrackedCollection
    - events: collection notification payloads
    - config: TrackingConfig defaults and scoped overrides
"""
from changetracking.collection import StatusView, TrackedCollection, as_trackable_collection
from changetracking.config import (
    TrackingConfig,
    get_default_tracking_config,
    get_tracking_config,
    set_default_tracking_config,
    tracking_config,
)
from changetracking.errors import (
    ChangeTrackingError,
    InvalidStateError,
    StaleReferenceError,
    UnsupportedTypeError,
)
from changetracking.events import CollectionChangedEvent, CollectionChangeKind
from changetracking.ledger import ABSENT, ChangeLedger, LedgerEntry, default_comparer
from changetracking.proxy_factory import ChangeTrackable, get_proxied_type
from changetracking.status import ChangeStatus, SortDirection
from changetracking.tracker import (
    ObjectTracker,
    accept_changes,
    as_trackable,
    delete,
    get_changed_properties,
    get_original,
    get_original_value,
    get_status,
    get_tracker,
    is_trackable,
    reject_changes,
    unwrap,
)

__version__ = '1.0.0'

__all__ = [
    # Status
    'ChangeStatus',
    'SortDirection',
    # Errors
    'ChangeTrackingError',
    'UnsupportedTypeError',
    'StaleReferenceError',
    'InvalidStateError',
    # Ledger
    'ABSENT',
    'ChangeLedger',
    'LedgerEntry',
    'default_comparer',
    # Proxy fabric
    'ChangeTrackable',
    'get_proxied_type',
    # Object tracking
    'ObjectTracker',
    'as_trackable',
    'is_trackable',
    'get_tracker',
    'get_status',
    'get_changed_properties',
    'get_original_value',
    'get_original',
    'accept_changes',
    'reject_changes',
    'delete',
    'unwrap',
    # Collections
    'TrackedCollection',
    'StatusView',
    'as_trackable_collection',
    'CollectionChangedEvent',
    'CollectionChangeKind',
    # Configuration
    'TrackingConfig',
    'tracking_config',
    'get_tracking_config',
    'get_default_tracking_config',
    'set_default_tracking_config',
]
