"""Tests for the entry sync controller."""

from datetime import date

import pytest

from document_store import EntriesSnapshot
from errors import StoreReadFailed, StoreSubscriptionFailed, StoreWriteFailed, Unauthenticated
from fakes import wait_until
from weight_entries import EntrySyncController
from weight_tracker import WeightEntry


@pytest.fixture()
def controller(store):
    ctrl = EntrySyncController(store)
    yield ctrl
    ctrl.close()


def test_no_user_gives_empty_list(controller, store):
    controller.set_user(None)
    assert controller.state.entries == ()
    assert controller.state.loading is False
    assert store.entry_subs == []


def test_write_without_user_raises_immediately(controller):
    with pytest.raises(Unauthenticated):
        controller.add_entry(WeightEntry(date(2025, 1, 1), 100))
    with pytest.raises(Unauthenticated):
        controller.remove_entry(date(2025, 1, 1))


async def test_empty_cache_snapshot_keeps_loading(controller, store):
    controller.set_user("u1")
    store.entry_subs[0].emit(EntriesSnapshot((), from_cache=True))
    assert controller.state.loading is True


async def test_empty_server_snapshot_finishes_loading(controller, store):
    controller.set_user("u1")
    store.entry_subs[0].emit(EntriesSnapshot((), from_cache=False))
    assert controller.state.loading is False
    assert controller.state.entries == ()


async def test_cached_entries_are_shown(controller, store, sample_entries):
    controller.set_user("u1")
    store.entry_subs[0].emit(EntriesSnapshot(tuple(sample_entries), from_cache=True))
    assert controller.state.entries == tuple(sample_entries)
    assert controller.state.loading is False


async def test_live_updates_replace_the_list(controller, store, sample_entries):
    controller.set_user("u1")
    sub = store.entry_subs[0]
    sub.emit(EntriesSnapshot(tuple(sample_entries), from_cache=True))
    sub.emit(EntriesSnapshot(tuple(sample_entries[:1]), from_cache=False))
    assert controller.state.entries == tuple(sample_entries[:1])


async def test_legacy_migration_runs_on_activation(controller, store):
    controller.set_user("u1")
    await wait_until(lambda: store.migrations == ["u1"])


async def test_failed_migration_does_not_touch_state(controller, store):
    store.migration_error = StoreWriteFailed("bad csv")
    controller.set_user("u1")
    await wait_until(lambda: store.migrations == ["u1"])
    assert controller.state.error is None
    assert controller.state.loading is True


async def test_subscription_error_falls_back_to_server_read(controller, store, sample_entries):
    store.server_entries["u1"] = sample_entries
    controller.set_user("u1")
    store.entry_subs[0].fail(StoreSubscriptionFailed("denied"))

    await wait_until(lambda: not controller.state.loading)
    assert controller.state.entries == tuple(sample_entries)
    assert controller.state.error is None


async def test_subscription_and_fallback_failure_sets_error(controller, store):
    original = StoreSubscriptionFailed("denied")
    store.read_error = StoreReadFailed("down")
    controller.set_user("u1")
    store.entry_subs[0].fail(original)

    await wait_until(lambda: not controller.state.loading)
    assert controller.state.error is original
    assert controller.state.entries == ()


async def test_switching_user_drops_old_snapshots(controller, store, sample_entries):
    controller.set_user("u1")
    old = store.entry_subs[0]
    controller.set_user("u2")
    assert old.active is False

    old.on_data(EntriesSnapshot(tuple(sample_entries), from_cache=False))
    assert controller.state.entries == ()
    assert controller.state.loading is True
    assert store.entry_subs[1].user_id == "u2"


async def test_add_and_remove_entry(controller, store):
    controller.set_user("u1")
    entry = WeightEntry(date(2025, 1, 15), 97.2)

    await controller.add_entry(entry)
    await controller.remove_entry("2025-01-15")

    assert store.writes == [("u1", entry)]
    assert store.deletes == [("u1", date(2025, 1, 15))]


async def test_failed_write_is_raised_and_recorded(controller, store):
    controller.set_user("u1")
    store.write_error = StoreWriteFailed("nope")

    with pytest.raises(StoreWriteFailed):
        await controller.add_entry(WeightEntry(date(2025, 1, 15), 97.2))
    assert controller.state.error is store.write_error


async def test_state_listeners_are_notified(controller, store, sample_entries):
    seen = []
    remove = controller.add_listener(seen.append)
    controller.set_user("u1")
    store.entry_subs[0].emit(EntriesSnapshot(tuple(sample_entries), from_cache=False))
    remove()
    store.entry_subs[0].emit(EntriesSnapshot((), from_cache=False))

    assert [s.loading for s in seen] == [True, False]
    assert seen[-1].entries == tuple(sample_entries)
