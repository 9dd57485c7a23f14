"""Tests for the reconciliation log."""

from __future__ import annotations

import sqlite3

import pytest

from meshgarden.errors import NotFoundError, ParseError
from meshgarden.ifacelog import append_log_tx, last_log_tx
from meshgarden.models import Operation, State


@pytest.fixture
def iface(store, new_interface):
    """A stored interface with no history."""
    iface = new_interface("laptop", "office")
    store.ensure_interface(iface)
    return iface


def append(store, iface, operation, state, dirty, message=""):
    return store.with_log(
        iface, lambda tx, last: append_log_tx(tx, iface, operation, state, dirty, message),
    )


class TestWithLog:
    def test_no_history_passes_none(self, store, iface):
        seen = []
        store.with_log(iface, lambda tx, last: seen.append(last))
        assert seen == [None]

    def test_passes_latest_entry(self, store, iface):
        append(store, iface, Operation.JOIN, State.JOINED, True)
        latest = append(store, iface, Operation.APPLY, State.APPLIED, False)
        seen = []
        store.with_log(iface, lambda tx, last: seen.append(last))
        assert seen == [latest]

    def test_returns_callback_result(self, store, iface):
        assert store.with_log(iface, lambda tx, last: "done") == "done"

    def test_failed_callback_discards_entry(self, store, iface):
        append(store, iface, Operation.JOIN, State.JOINED, True)

        def fail(tx, last):
            append_log_tx(tx, iface, Operation.APPLY, State.APPLIED, False)
            raise ValueError("wg set failed")

        with pytest.raises(ValueError, match="wg set failed"):
            store.with_log(iface, fail)
        last = store.last_log_by_device("laptop", "office")
        assert last.operation == Operation.JOIN

    def test_last_log_tx_sees_own_writes(self, store, iface):
        def write_and_read(tx, last):
            entry = append_log_tx(tx, iface, Operation.UP, State.UP, False)
            return entry, last_log_tx(tx, iface)

        entry, read_back = store.with_log(iface, write_and_read)
        assert read_back == entry


class TestAppendLog:
    def test_apply_applied_clean(self, store, iface):
        """An applied entry is reported as the current, clean status."""
        earlier = append(store, iface, Operation.JOIN, State.JOINED, True, "joined")
        entry = append(store, iface, Operation.APPLY, State.APPLIED, False, "configured wg0")

        last = store.last_log_by_device("laptop", "office")
        assert last == entry
        assert last.dirty is False
        assert last.message == "configured wg0"
        assert last.id > earlier.id
        assert last.timestamp >= earlier.timestamp

    def test_last_is_highest_id(self, store, iface):
        entries = [
            append(store, iface, Operation.REFRESH, State.REFRESHED, i % 2 == 0, f"step {i}")
            for i in range(10)
        ]
        ids = [e.id for e in entries]
        assert ids == sorted(ids)
        assert len(set(ids)) == 10
        assert store.last_log_by_device("laptop", "office").id == max(ids)

    def test_highest_id_wins_over_timestamp(self, store, db_path, iface):
        """Current status is the highest id even if its clock reads earlier."""
        append(store, iface, Operation.JOIN, State.JOINED, True)
        latest = append(store, iface, Operation.APPLY, State.APPLIED, False)
        conn = sqlite3.connect(str(db_path))
        with conn:
            conn.execute("update iface_log set ts = 0 where id = ?", (latest.id,))
        conn.close()
        last = store.last_log_by_device("laptop", "office")
        assert last.id == latest.id
        assert last.timestamp.year == 1970

    def test_histories_are_per_interface(self, store, iface, new_interface):
        other = new_interface("desktop", "office")
        store.ensure_interface(other)
        append(store, iface, Operation.APPLY, State.APPLIED, False)
        append(store, other, Operation.DOWN, State.FAILED, True, "no route")

        assert store.last_log_by_device("laptop", "office").state == State.APPLIED
        assert store.last_log_by_device("desktop", "office").message == "no route"

    def test_accepts_plain_strings(self, store, iface):
        entry = append(store, iface, "apply", "applied", False)
        assert entry.operation is Operation.APPLY
        assert entry.state is State.APPLIED

    def test_unsaved_interface_rejected(self, store, new_interface):
        """Entries must reference an existing interface."""
        unsaved = new_interface("ghost")
        with pytest.raises(NotFoundError):
            append(store, unsaved, Operation.JOIN, State.JOINED, True)


class TestLastLogByDevice:
    def test_no_history(self, store, iface):
        with pytest.raises(NotFoundError):
            store.last_log_by_device("laptop", "office")

    def test_unknown_device(self, store):
        with pytest.raises(NotFoundError):
            store.last_log_by_device("nobody", "nowhere")

    def test_follows_rename(self, store, iface):
        append(store, iface, Operation.JOIN, State.JOINED, True)
        iface.device.name = "renamed"
        store.ensure_interface(iface)
        assert store.last_log_by_device("renamed", "office").operation == Operation.JOIN

    def test_unknown_state_is_parse_error(self, store, db_path, iface):
        entry = append(store, iface, Operation.APPLY, State.APPLIED, False)
        conn = sqlite3.connect(str(db_path))
        with conn:
            conn.execute("update iface_log set state = 'exploded' where id = ?", (entry.id,))
        conn.close()
        with pytest.raises(ParseError):
            store.last_log_by_device("laptop", "office")
