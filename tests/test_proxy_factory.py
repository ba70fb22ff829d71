"""Tests for proxy class generation and member routing."""
import copy
import dataclasses
import pickle
import pytest

from changetracking import ChangeTrackable, UnsupportedTypeError, get_proxied_type
from changetracking.proxy_factory import (
    InterceptionHandler,
    create_proxy,
    get_handler,
    get_proxy_class,
    is_proxyable,
)

from models import Account, Money, Order, Point, User


class RecordingHandler(InterceptionHandler):
    """Forwards to the seed and records every routed access."""

    def __init__(self, seed):
        self.seed = seed
        self.calls = []

    def on_get(self, proxy, name):
        self.calls.append(('get', name))
        if name in vars(self.seed):
            return getattr(self.seed, name)
        return object.__getattribute__(proxy, name)

    def on_set(self, proxy, name, value):
        self.calls.append(('set', name))
        setattr(self.seed, name, value)

    def on_delete(self, proxy, name):
        self.calls.append(('delete', name))
        delattr(self.seed, name)

    def plain_copy(self, deep, memo=None):
        return copy.deepcopy(self.seed, memo) if deep else copy.copy(self.seed)


class Sealed:
    __final__ = True


def test_proxy_is_instance_of_original_type():
    """Proxies pass isinstance checks for the seed type and the marker."""
    proxy = create_proxy(User("X"), RecordingHandler(User("X")))
    assert isinstance(proxy, User)
    assert isinstance(proxy, ChangeTrackable)
    assert type(proxy).__name__ == "User"
    assert type(proxy).__qualname__ == User.__qualname__


def test_proxy_class_is_cached():
    """One generated class per seed type."""
    assert get_proxy_class(User) is get_proxy_class(User)
    assert get_proxy_class(User) is not get_proxy_class(Order)


def test_member_access_is_routed():
    """Reads, writes and deletes of non-dunder names reach the handler."""
    seed = User("X")
    handler = RecordingHandler(seed)
    proxy = create_proxy(seed, handler)

    assert proxy.name == "X"
    proxy.name = "Y"
    del proxy.age

    assert seed.name == "Y"
    assert "age" not in vars(seed)
    assert handler.calls == [('get', 'name'), ('set', 'name'), ('delete', 'age')]


def test_methods_run_against_the_proxy():
    """self inside methods and properties is the proxy, so inner access is routed too."""
    seed = Account("ann", 10)
    handler = RecordingHandler(seed)
    proxy = create_proxy(seed, handler)

    assert proxy.balance == 10
    assert ('get', '_balance') in handler.calls


def test_dunder_names_bypass_handler():
    """Dunder attributes resolve normally."""
    seed = User("X")
    handler = RecordingHandler(seed)
    proxy = create_proxy(seed, handler)
    assert proxy.__class__ is type(proxy)
    assert handler.calls == []


def test_get_proxied_type():
    proxy = create_proxy(User(), RecordingHandler(User()))
    assert get_proxied_type(proxy) is User
    assert get_proxied_type(type(proxy)) is User
    assert get_proxied_type(User()) is User


def test_slotted_class_is_proxyable():
    seed = Point(1, 2)
    proxy = create_proxy(seed, RecordingHandler(seed))
    assert isinstance(proxy, Point)


class TestUnsupportedTypes:
    """Types the fabric refuses."""

    @pytest.mark.parametrize("cls", [int, str, tuple, list, dict, set, Money, Sealed, type])
    def test_unsupported(self, cls):
        assert not is_proxyable(cls)
        with pytest.raises(UnsupportedTypeError):
            get_proxy_class(cls)

    def test_unsupported_type_error_is_a_type_error(self):
        with pytest.raises(TypeError, match="Cannot track instances of int"):
            get_proxy_class(int)

    def test_proxy_of_proxy_refused(self):
        with pytest.raises(UnsupportedTypeError):
            get_proxy_class(get_proxy_class(User))


class TestHandlerLookup:

    def test_get_handler(self):
        handler = RecordingHandler(User())
        proxy = create_proxy(User(), handler)
        assert get_handler(proxy) is handler

    def test_get_handler_rejects_plain_objects(self):
        with pytest.raises(TypeError):
            get_handler(User())


class TestCopyAndPickle:
    """Copies of a proxy are plain objects with the current values."""

    def test_shallow_copy(self):
        seed = User("X", 3)
        proxy = create_proxy(seed, RecordingHandler(seed))
        copied = copy.copy(proxy)
        assert type(copied) is User
        assert copied == seed
        assert copied is not seed

    def test_deep_copy(self):
        seed = Order(customer="ACME")
        proxy = create_proxy(seed, RecordingHandler(seed))
        copied = copy.deepcopy(proxy)
        assert type(copied) is Order
        assert copied.customer == "ACME"
        assert copied.details is not seed.details

    def test_pickle(self):
        seed = User("X", 3)
        proxy = create_proxy(seed, RecordingHandler(seed))
        restored = pickle.loads(pickle.dumps(proxy))
        assert type(restored) is User
        assert restored == seed


class TestDirectConstruction:
    """Calling a proxy class builds a plain instance of the original type."""

    def test_calling_proxy_class(self):
        seed = User("X", 3)
        proxy = create_proxy(seed, RecordingHandler(seed))
        built = type(proxy)("Z")
        assert type(built) is User
        assert built == User("Z")

    def test_dataclasses_replace(self):
        seed = User("X", 3)
        proxy = create_proxy(seed, RecordingHandler(seed))
        replaced = dataclasses.replace(proxy, name="Y")
        assert type(replaced) is User
        assert replaced == User("Y", 3)
        assert proxy.name == "X"
