"""
Proxy fabric: runtime subclasses that route member access through a handler.

Given a plain object and an interception handler, create_proxy() returns an
instance of a generated subclass of the object's type. The proxy passes
isinstance() checks for the original type, runs the original methods and
properties with itself as ``self``, and hands every non-dunder attribute
read, write and delete to the handler.

Generated classes are cached per original type (same pattern as the lazy
class cache), keep the original __name__/__qualname__/__module__ and use the
original metaclass, so repr() and introspection look like the plain type.
Proxies only come from create_proxy(); calling a proxy class directly, as
dataclasses.replace() does, returns a plain, untracked instance of the
original type.

Usage:
    proxy = create_proxy(order, handler)
    isinstance(proxy, Order)            # True
    isinstance(proxy, ChangeTrackable)  # True
    proxy.customer = "ACME"             # handler.on_set(proxy, "customer", "ACME")
"""
import logging
import types
from abc import ABC, abstractmethod
from typing import Any, Dict, Type

from changetracking.errors import UnsupportedTypeError
from changetracking.ledger import VALUE_TYPES, is_frozen_dataclass_type

logger = logging.getLogger(__name__)

# Instance attribute (stored in the proxy's own __dict__) holding the handler
HANDLER_ATTRIBUTE = '__changetracking_handler__'

# Cache for proxy classes to prevent duplicate creation
_proxy_class_cache: Dict[Type, Type] = {}

_UNPROXYABLE_CONTAINERS = (list, dict, set, bytearray, memoryview)
_UNPROXYABLE_CALLABLES = (
    type, types.ModuleType, types.FunctionType, types.BuiltinFunctionType,
    types.MethodType, types.GeneratorType, types.CoroutineType,
)


class InterceptionHandler(ABC):
    """Receives every routed member access of a proxy."""

    @abstractmethod
    def on_get(self, proxy: Any, name: str) -> Any:
        """Return the value of attribute ``name``."""

    @abstractmethod
    def on_set(self, proxy: Any, name: str, value: Any) -> None:
        """Assign attribute ``name``."""

    @abstractmethod
    def on_delete(self, proxy: Any, name: str) -> None:
        """Delete attribute ``name``."""

    @abstractmethod
    def plain_copy(self, deep: bool, memo: Any = None) -> Any:
        """Return an untracked copy of the proxied object."""


class ChangeTrackable:
    """
    Base class mixed into every generated proxy class.

    ANTI-DUCK-TYPING: use isinstance(obj, ChangeTrackable) instead of probing
    for tracking attributes.
    """
    __slots__ = ()


def _is_dunder(name: str) -> bool:
    return name[:2] == '__' and name[-2:] == '__'


def _handler_of(proxy: Any) -> InterceptionHandler:
    try:
        return object.__getattribute__(proxy, HANDLER_ATTRIBUTE)
    except AttributeError:
        raise TypeError(
            f"{type(proxy).__qualname__} proxy has no interception handler; "
            f"tracked instances are created with as_trackable()"
        ) from None


def _proxy_getattribute(self, name):
    if _is_dunder(name):
        return object.__getattribute__(self, name)
    return _handler_of(self).on_get(self, name)


def _proxy_setattr(self, name, value):
    if _is_dunder(name):
        object.__setattr__(self, name, value)
        return
    _handler_of(self).on_set(self, name, value)


def _proxy_delattr(self, name):
    if _is_dunder(name):
        object.__delattr__(self, name)
        return
    _handler_of(self).on_delete(self, name)


def _proxy_new(cls, *args, **kwargs):
    # Calling a proxy class (dataclasses.replace, type(proxy)(...)) builds a plain instance
    return get_proxied_type(cls)(*args, **kwargs)


def _proxy_copy(self):
    return _handler_of(self).plain_copy(deep=False)


def _proxy_deepcopy(self, memo):
    return _handler_of(self).plain_copy(deep=True, memo=memo)


def _restore_plain(plain):
    return plain


def _proxy_reduce_ex(self, protocol):
    # Pickling a proxy pickles the plain object with its current values
    return _restore_plain, (_handler_of(self).plain_copy(deep=False),)


def check_proxyable(cls: Type) -> None:
    """Raise UnsupportedTypeError if instances of cls cannot be proxied."""
    if issubclass(cls, ChangeTrackable):
        raise UnsupportedTypeError(cls, "already a tracked proxy type")
    if issubclass(cls, VALUE_TYPES):
        raise UnsupportedTypeError(cls, "immutable value type")
    if issubclass(cls, _UNPROXYABLE_CONTAINERS):
        raise UnsupportedTypeError(cls, "builtin container; wrap sequences with as_trackable_collection()")
    if issubclass(cls, _UNPROXYABLE_CALLABLES):
        raise UnsupportedTypeError(cls, "classes, modules and callables cannot be tracked")
    if getattr(cls, '__final__', False):
        raise UnsupportedTypeError(cls, "class is marked final")
    if is_frozen_dataclass_type(cls):
        raise UnsupportedTypeError(cls, "frozen dataclass")


def is_proxyable(cls: Type) -> bool:
    """True if get_proxy_class(cls) would succeed."""
    if cls in _proxy_class_cache:
        return True
    try:
        get_proxy_class(cls)
    except UnsupportedTypeError:
        return False
    return True


def get_proxy_class(cls: Type) -> Type:
    """Get or create the proxy subclass for cls."""
    cached = _proxy_class_cache.get(cls)
    if cached is not None:
        return cached

    check_proxyable(cls)

    namespace = {
        '__module__': cls.__module__,
        '__qualname__': cls.__qualname__,
        '__doc__': cls.__doc__,
        '__getattribute__': _proxy_getattribute,
        '__setattr__': _proxy_setattr,
        '__delattr__': _proxy_delattr,
        '__new__': _proxy_new,
        '__copy__': _proxy_copy,
        '__deepcopy__': _proxy_deepcopy,
        '__reduce_ex__': _proxy_reduce_ex,
    }

    # Keep the original metaclass so ABCs and custom metaclasses still apply
    base_metaclass = type(cls)
    try:
        proxy_cls = base_metaclass(cls.__name__, (cls, ChangeTrackable), namespace)
    except TypeError as e:
        raise UnsupportedTypeError(cls, str(e)) from e

    _proxy_class_cache[cls] = proxy_cls
    logger.debug(f"Created proxy class for {cls.__module__}.{cls.__qualname__}")
    return proxy_cls


def get_proxied_type(proxy_or_type: Any) -> Type:
    """Original type behind a proxy instance or proxy class."""
    cls = proxy_or_type if isinstance(proxy_or_type, type) else type(proxy_or_type)
    if issubclass(cls, ChangeTrackable):
        return cls.__mro__[1]
    return cls


def create_proxy(seed: Any, handler: InterceptionHandler) -> Any:
    """Create a proxy for seed whose member access is routed to handler."""
    proxy_cls = get_proxy_class(type(seed))
    try:
        proxy = object.__new__(proxy_cls)
    except TypeError as e:
        raise UnsupportedTypeError(type(seed), str(e)) from e
    object.__setattr__(proxy, HANDLER_ATTRIBUTE, handler)
    return proxy


def get_handler(proxy: Any) -> InterceptionHandler:
    """Return the interception handler of a proxy."""
    if not isinstance(proxy, ChangeTrackable):
        raise TypeError(f"{type(proxy).__qualname__} instance is not a tracked proxy")
    return _handler_of(proxy)


def clear_cache() -> None:
    """Drop all cached proxy classes. For testing only."""
    _proxy_class_cache.clear()
