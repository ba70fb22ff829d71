"""Tests for the change ledger and the default comparer."""
import copy
import datetime
from decimal import Decimal

from changetracking import ABSENT, ChangeLedger, ChangeStatus, default_comparer

from models import Address, Money


def test_first_write_records_prior_value_as_original():
    """The value held before the first write becomes the original."""
    ledger = ChangeLedger()
    entry = ledger.record_write("name", "Y", "X")
    assert entry.original == "X"
    assert entry.current == "Y"
    assert entry.is_dirty


def test_intermediate_writes_keep_original():
    """Later writes only move current."""
    ledger = ChangeLedger()
    ledger.record_write("name", "Y", "X")
    ledger.record_write("name", "Z", "Y")
    assert ledger.snapshot_original("name") == "X"
    assert ledger.entry("name").current == "Z"


def test_writing_original_back_clears_dirty():
    """Dirty means current differs from original, not 'was written'."""
    ledger = ChangeLedger()
    ledger.record_write("name", "Y", "X")
    ledger.record_write("name", "X", "Y")
    assert not ledger.is_dirty("name")
    assert ledger.status is ChangeStatus.UNCHANGED


def test_status_is_derived_from_entries():
    """UNCHANGED/MODIFIED follow the entries; lifecycle statuses are kept."""
    ledger = ChangeLedger()
    assert ledger.status is ChangeStatus.UNCHANGED
    ledger.record_write("age", 31, 30)
    assert ledger.status is ChangeStatus.MODIFIED

    added = ChangeLedger(ChangeStatus.ADDED)
    added.record_write("age", 31, 30)
    assert added.status is ChangeStatus.ADDED


def test_accept_returns_dirty_names_and_resets():
    """accept() commits and collapses ADDED/MODIFIED to UNCHANGED."""
    ledger = ChangeLedger(ChangeStatus.ADDED)
    ledger.record_write("name", "Y", "X")
    ledger.record_write("age", 30, 30)

    assert ledger.accept() == {"name"}
    assert ledger.status is ChangeStatus.UNCHANGED
    assert ledger.entry("name") is None


def test_accept_keeps_deleted_status():
    """A DELETED ledger stays DELETED; release is the tracker's job."""
    ledger = ChangeLedger()
    ledger.set_status(ChangeStatus.DELETED)
    ledger.accept()
    assert ledger.base_status is ChangeStatus.DELETED


def test_pending_reverts_skip_identical_objects():
    """Entries whose current value is the original object need no revert."""
    ledger = ChangeLedger()
    ledger.record_write("name", "Y", "X")
    address = Address()
    ledger.record_write("address", Address(), address)
    ledger.record_write("address", address, None)
    assert ledger.pending_reverts() == {"name": "X"}


def test_pending_reverts_include_absent_originals():
    """New attributes revert to ABSENT; clear() drops every entry."""
    ledger = ChangeLedger()
    ledger.record_write("name", "Y", "X")
    ledger.record_write("nickname", "Z")

    assert ledger.pending_reverts() == {"name": "X", "nickname": ABSENT}
    ledger.clear()
    assert not ledger.has_changes()
    assert ledger.pending_reverts() == {}


def test_restore_entry():
    """restore_entry() puts back a copy, or drops the entry for None."""
    ledger = ChangeLedger()
    ledger.record_write("name", "Y", "X")
    saved = copy.copy(ledger.entry("name"))
    ledger.record_write("name", "Z")

    ledger.restore_entry("name", saved)
    assert ledger.entry("name").current == "Y"
    assert ledger.entry("name") is not saved
    ledger.restore_entry("name", None)
    assert ledger.entry("name") is None


def test_custom_comparer():
    """A custom comparer decides dirtiness."""
    ledger = ChangeLedger(comparer=lambda a, b: str(a).lower() == str(b).lower())
    ledger.record_write("name", "acme", "ACME")
    assert not ledger.is_dirty("name")


class TestDefaultComparer:
    """Value types compare structurally, everything else by identity."""

    def test_primitives_and_strings(self):
        assert default_comparer(1, 1)
        assert default_comparer("abc", "".join(["a", "bc"]))
        assert not default_comparer(1, 2)
        assert default_comparer(None, None)

    def test_decimal_and_dates(self):
        assert default_comparer(Decimal("1.0"), Decimal("1.00"))
        assert default_comparer(datetime.date(2024, 1, 1), datetime.date(2024, 1, 1))

    def test_frozen_dataclass_is_a_value(self):
        assert default_comparer(Money(5), Money(5))
        assert not default_comparer(Money(5), Money(6))

    def test_mutable_objects_compare_by_identity(self):
        address = Address("1 Main St")
        assert default_comparer(address, address)
        assert not default_comparer(address, Address("1 Main St"))
        assert not default_comparer([1], [1])

    def test_absent_differs_from_none(self):
        assert not default_comparer(ABSENT, None)
        assert default_comparer(ABSENT, ABSENT)
