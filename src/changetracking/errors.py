"""
Exception taxonomy for change tracking.

All errors are raised synchronously by the operation that detects them.
"""


class ChangeTrackingError(Exception):
    """Base class for all change tracking errors."""


class UnsupportedTypeError(ChangeTrackingError, TypeError):
    """The proxy fabric cannot represent the given type.

    Raised for immutable value types, builtin containers, frozen dataclasses,
    classes marked with typing.final and classes that refuse subclassing.
    """

    def __init__(self, cls: type, reason: str):
        self.cls = cls
        self.reason = reason
        type_name = getattr(cls, '__qualname__', repr(cls))
        super().__init__(f"Cannot track instances of {type_name}: {reason}")


class StaleReferenceError(ChangeTrackingError):
    """Operation on a tracked instance whose deletion was already accepted."""


class InvalidStateError(ChangeTrackingError):
    """Operation not allowed in the current lifecycle state."""
