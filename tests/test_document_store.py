"""Tests for the cache-then-server document store and its local cache."""

import json
import os
import threading
from datetime import date

import pytest

from document_store import DocumentStore, EntriesSnapshot, GoalSnapshot, LocalCache
from errors import StoreReadFailed, StoreSubscriptionFailed, StoreWriteFailed
from fakes import wait_until
from weight_tracker import WeightEntry


@pytest.fixture()
def cache(tmp_path) -> LocalCache:
    return LocalCache(str(tmp_path / "cache.json"))


@pytest.fixture()
def doc_store(backend, cache):
    ds = DocumentStore(backend=backend, cache=cache, poll_interval=0)
    yield ds
    ds.close()


# ---- LocalCache ----


def test_cache_round_trips_through_disk(tmp_path, loss_goals, sample_entries):
    path = str(tmp_path / "cache.json")
    first = LocalCache(path)
    first.set_goals("u1", loss_goals)
    first.set_entries("u1", tuple(reversed(sample_entries)))

    second = LocalCache(path)
    assert second.get_goals("u1") == loss_goals
    assert second.get_entries("u1") == tuple(sample_entries)
    assert second.get_goals("someone-else") is None


def test_cache_stores_goals_under_wire_keys(tmp_path, loss_goals):
    path = tmp_path / "cache.json"
    LocalCache(str(path)).set_goals("u1", loss_goals)
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["u1"]["goals"] == {
        "startWeight": 100,
        "targetWeight": 80,
        "startDate": "2025-01-01",
        "targetDate": "2025-06-01",
    }


def test_corrupt_cache_is_moved_aside(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")

    cache = LocalCache(str(path))

    assert cache.get_entries("u1") == ()
    assert not path.exists()
    assert any(name.startswith("cache.json.corrupt-") for name in os.listdir(tmp_path))


def test_in_memory_cache_writes_nothing(tmp_path, loss_goals):
    cache = LocalCache()
    cache.set_goals("u1", loss_goals)
    assert cache.get_goals("u1") == loss_goals
    assert os.listdir(tmp_path) == []


# ---- subscriptions ----


async def test_entry_subscription_delivers_cache_then_server(doc_store, backend, cache, sample_entries):
    cache.set_entries("u1", tuple(sample_entries[:1]))
    backend.upsert_entries_for_user("u1", sample_entries)
    seen = []

    doc_store.subscribe_entries("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    assert seen[0] == EntriesSnapshot(tuple(sample_entries[:1]), from_cache=True)
    assert seen[1] == EntriesSnapshot(tuple(sample_entries), from_cache=False)
    assert cache.get_entries("u1") == tuple(sample_entries)


async def test_goal_subscription_reports_server_absence(doc_store):
    seen = []
    doc_store.subscribe_goal("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    assert seen == [GoalSnapshot(None, from_cache=True), GoalSnapshot(None, from_cache=False)]
    assert not seen[1].exists


async def test_identical_snapshots_are_not_redelivered(doc_store, backend, cache, loss_goals):
    backend.goals["u1"] = loss_goals
    seen = []
    doc_store.subscribe_goal("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    await doc_store.write_goal("u1", loss_goals)
    assert len(seen) == 2


async def test_offline_backend_leaves_listener_on_cache(doc_store, backend, cache, loss_goals):
    cache.set_goals("u1", loss_goals)
    backend.error = OSError("network unreachable")
    seen, errors = [], []

    doc_store.subscribe_goal("u1", seen.append, errors.append)
    listener = doc_store._goal_listeners["u1"][0]
    await wait_until(lambda: listener.task.done())

    assert seen == [GoalSnapshot(loss_goals, from_cache=True)]
    assert errors == []


async def test_backend_failure_surfaces_as_subscription_error(doc_store, backend):
    backend.error = RuntimeError("permission denied")
    seen, errors = [], []

    doc_store.subscribe_entries("u1", seen.append, errors.append)
    await wait_until(lambda: errors)

    assert isinstance(errors[0], StoreSubscriptionFailed)
    assert isinstance(errors[0].__cause__, RuntimeError)
    assert seen == [EntriesSnapshot((), from_cache=True)]


async def test_unsubscribe_stops_delivery(doc_store, backend, sample_entries):
    seen = []
    unsubscribe = doc_store.subscribe_entries("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)
    unsubscribe()

    await doc_store.write_entry("u1", WeightEntry(date(2025, 3, 1), 95.0))
    assert len(seen) == 2


async def test_polling_picks_up_changes_from_elsewhere(backend, cache, loss_goals):
    ds = DocumentStore(backend=backend, cache=cache, poll_interval=0.02)
    seen = []
    try:
        ds.subscribe_goal("u1", seen.append)
        await wait_until(lambda: len(seen) == 2)
        backend.goals["u1"] = loss_goals
        await wait_until(lambda: len(seen) == 3)
    finally:
        ds.close()
    assert seen[-1] == GoalSnapshot(loss_goals, from_cache=False)


# ---- one-shot operations ----


async def test_write_entry_refreshes_listeners(doc_store, backend):
    seen = []
    doc_store.subscribe_entries("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    entry = WeightEntry(date(2025, 1, 15), 98.0)
    await doc_store.write_entry("u1", entry)

    assert seen[-1] == EntriesSnapshot((entry,), from_cache=False)


async def test_same_day_write_replaces_entry(doc_store, backend):
    await doc_store.write_entry("u1", WeightEntry(date(2025, 1, 15), 98.0))
    await doc_store.write_entry("u1", WeightEntry(date(2025, 1, 15), 97.5))
    assert await doc_store.read_entries_from_server("u1") == (WeightEntry(date(2025, 1, 15), 97.5),)


async def test_delete_entry_accepts_iso_string(doc_store, backend, sample_entries):
    backend.upsert_entries_for_user("u1", sample_entries)
    await doc_store.delete_entry("u1", "2025-01-15")
    assert date(2025, 1, 15) not in backend.entries["u1"]


async def test_write_goal_updates_cache_and_listeners(doc_store, cache, loss_goals):
    seen = []
    doc_store.subscribe_goal("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    await doc_store.write_goal("u1", loss_goals)

    assert cache.get_goals("u1") == loss_goals
    assert seen[-1] == GoalSnapshot(loss_goals, from_cache=False)


async def test_write_failures_are_wrapped(doc_store, backend, loss_goals):
    backend.error = RuntimeError("disk full")
    with pytest.raises(StoreWriteFailed):
        await doc_store.write_goal("u1", loss_goals)
    with pytest.raises(StoreWriteFailed):
        await doc_store.write_entry("u1", WeightEntry(date(2025, 1, 1), 100.0))
    with pytest.raises(StoreWriteFailed):
        await doc_store.delete_entry("u1", date(2025, 1, 1))


async def test_read_failures_are_wrapped(doc_store, backend):
    backend.error = OSError("offline")
    with pytest.raises(StoreReadFailed):
        await doc_store.read_goal_from_server("u1")
    with pytest.raises(StoreReadFailed):
        await doc_store.read_entries_from_server("u1")


async def test_read_goal_from_server_refreshes_cache(doc_store, backend, cache, loss_goals):
    backend.goals["u1"] = loss_goals
    assert await doc_store.read_goal_from_server("u1") == loss_goals
    assert cache.get_goals("u1") == loss_goals


async def test_migration_without_legacy_file_is_noop(doc_store, backend):
    assert await doc_store.migrate_legacy_entries("u1") == 0
    assert "upsert_entries" not in backend.calls


async def test_migration_copies_legacy_csv(doc_store, backend, isolated_data_dir):
    csv = isolated_data_dir / "weights.csv"
    csv.write_text("date,weight\n2025-01-01,100\n2025-01-02,99.5\n", encoding="utf-8")

    assert await doc_store.migrate_legacy_entries("u1") == 2
    assert backend.entries["u1"] == {date(2025, 1, 1): 100.0, date(2025, 1, 2): 99.5}
    assert not csv.exists()


async def test_cache_writes_run_off_the_event_loop(doc_store, backend, cache, monkeypatch, loss_goals):
    loop_thread = threading.current_thread()
    save_threads = []
    save = cache._save

    def recording_save():
        save_threads.append(threading.current_thread())
        save()

    monkeypatch.setattr(cache, "_save", recording_save)
    seen = []
    doc_store.subscribe_goal("u1", seen.append)
    doc_store.subscribe_entries("u1", seen.append)
    await wait_until(lambda: len(seen) == 4)

    await doc_store.write_goal("u1", loss_goals)
    await doc_store.write_entry("u1", WeightEntry(date(2025, 1, 2), 99.0))
    await doc_store.delete_entry("u1", date(2025, 1, 2))
    await doc_store.read_goal_from_server("u1")

    assert len(save_threads) >= 6
    assert loop_thread not in save_threads


async def test_written_entry_is_cached_when_reread_fails(doc_store, backend, cache, monkeypatch):
    seen = []
    doc_store.subscribe_entries("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    def unreachable(user_id):
        raise OSError("network unreachable")

    monkeypatch.setattr(backend, "get_entries_for_user", unreachable)
    entry = WeightEntry(date(2025, 1, 2), 99.0)
    await doc_store.write_entry("u1", entry)

    assert seen[-1] == EntriesSnapshot((entry,), from_cache=True)
    assert cache.get_entries("u1") == (entry,)

    await doc_store.delete_entry("u1", entry.date)
    assert seen[-1] == EntriesSnapshot((), from_cache=True)


async def test_refresh_redelivers_changes_from_elsewhere(doc_store, backend, loss_goals, sample_entries):
    goals_seen, entries_seen = [], []
    doc_store.subscribe_goal("u1", goals_seen.append)
    doc_store.subscribe_entries("u1", entries_seen.append)
    await wait_until(lambda: len(goals_seen) == 2 and len(entries_seen) == 2)

    backend.goals["u1"] = loss_goals
    backend.upsert_entries_for_user("u1", sample_entries)
    await doc_store.refresh("u1")

    assert goals_seen[-1] == GoalSnapshot(loss_goals, from_cache=False)
    assert entries_seen[-1] == EntriesSnapshot(tuple(sample_entries), from_cache=False)


async def test_refresh_without_listeners_reads_nothing(doc_store, backend):
    await doc_store.refresh("u1")
    assert backend.calls == []


async def test_refresh_survives_an_unreachable_backend(doc_store, backend, loss_goals):
    backend.goals["u1"] = loss_goals
    seen = []
    doc_store.subscribe_goal("u1", seen.append)
    await wait_until(lambda: len(seen) == 2)

    backend.error = OSError("network unreachable")
    await doc_store.refresh("u1")

    assert seen[-1] == GoalSnapshot(loss_goals, from_cache=False)
