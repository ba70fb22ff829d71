"""Tests for tracking configuration."""
import pytest

from changetracking import (
    ChangeStatus,
    TrackingConfig,
    as_trackable,
    as_trackable_collection,
    get_default_tracking_config,
    get_status,
    get_tracking_config,
    is_trackable,
    set_default_tracking_config,
    tracking_config,
)

from models import User


def test_static_defaults():
    config = get_tracking_config()
    assert config == TrackingConfig()
    assert config.make_complex_properties_trackable
    assert config.make_collection_properties_trackable
    assert config.comparer is None
    assert config.raise_item_changed_events


def test_set_default_tracking_config():
    """The process default applies to new trackers."""
    set_default_tracking_config(TrackingConfig(make_complex_properties_trackable=False))
    assert get_default_tracking_config().make_complex_properties_trackable is False
    assert get_tracking_config() is get_default_tracking_config()


def test_set_default_rejects_other_types():
    with pytest.raises(TypeError):
        set_default_tracking_config({"make_complex_properties_trackable": False})


def test_scoped_override_is_restored():
    with tracking_config(raise_item_changed_events=False) as config:
        assert get_tracking_config() is config
        assert not config.raise_item_changed_events
    assert get_tracking_config().raise_item_changed_events


def test_nested_overrides_compose():
    with tracking_config(make_complex_properties_trackable=False):
        with tracking_config(raise_item_changed_events=False) as inner:
            assert not inner.make_complex_properties_trackable
            assert not inner.raise_item_changed_events
        assert get_tracking_config().raise_item_changed_events


def test_override_does_not_touch_default():
    with tracking_config(make_collection_properties_trackable=False):
        assert get_default_tracking_config().make_collection_properties_trackable


def test_unknown_option_rejected():
    with pytest.raises(TypeError):
        with tracking_config(no_such_option=True):
            pass


def test_configured_comparer_is_used():
    """The comparer decides dirtiness for trackers created under the override."""
    with tracking_config(comparer=lambda a, b: str(a).lower() == str(b).lower()):
        user = as_trackable(User("ACME"))
    user.name = "acme"
    assert get_status(user) is ChangeStatus.UNCHANGED
    user.name = "Initech"
    assert get_status(user) is ChangeStatus.MODIFIED


def test_explicit_option_beats_config(plain_order):
    with tracking_config(make_complex_properties_trackable=False):
        order = as_trackable(plain_order, make_complex_properties_trackable=True)
    assert is_trackable(order.address)


def test_collection_reads_item_changed_setting():
    with tracking_config(raise_item_changed_events=False):
        users = as_trackable_collection([User("a")])
    changes = []
    users.on_item_changed(lambda collection, item, name: changes.append(name))
    users[0].name = "b"
    assert changes == []
