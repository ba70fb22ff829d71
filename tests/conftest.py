"""Pytest configuration and shared fixtures."""
import pytest

from changetracking import as_trackable, as_trackable_collection
import changetracking.config as config_module
import changetracking.proxy_factory as proxy_factory_module
import changetracking.tracker as tracker_module

from models import Address, Order, OrderDetail, User


@pytest.fixture(autouse=True)
def reset_tracking_state():
    """Reset configuration and class caches before each test."""
    config_module.reset_default_tracking_config()
    proxy_factory_module.clear_cache()
    tracker_module._type_hint_cache.clear()

    yield

    config_module.reset_default_tracking_config()


@pytest.fixture
def plain_order():
    """Order with an address and two detail lines."""
    return Order(
        customer="ACME",
        address=Address(street="1 Main St", city="Springfield"),
        details=[OrderDetail("Widget", 2), OrderDetail("Gadget", 1)],
    )


@pytest.fixture
def order(plain_order):
    """Tracked order."""
    return as_trackable(plain_order)


@pytest.fixture
def user():
    """Tracked user named X."""
    return as_trackable(User(name="X", age=30))


@pytest.fixture
def users():
    """Tracked collection of three users, one without an age."""
    return as_trackable_collection([
        User("Carol", 30),
        User("Alice", None),
        User("Bob", 20),
    ])


@pytest.fixture
def collection_events():
    """Factory: subscribe a recorder to a collection, return the recorded events."""
    def subscribe(collection):
        events = []
        collection.on_collection_changed(lambda _collection, event: events.append(event))
        return events
    return subscribe
