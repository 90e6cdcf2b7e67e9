#!/usr/bin/env python3

"""
Cache-then-server document store.

Subscriptions first deliver whatever the local cache holds (flagged
``from_cache=True``, possibly empty), then the server's answer once the
backend has been read (``from_cache=False``). If the backend is unreachable
the listener simply stays on the cached view. With ``poll_interval`` set the
backend is re-read periodically and changes are redelivered, which is how
edits made on another device show up.

Backend calls are blocking (see storage.py) and run via asyncio.to_thread.
Every callback is invoked on the event loop that created the subscription.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.exc import OperationalError

import migrate_data
import storage
from errors import StoreReadFailed, StoreSubscriptionFailed, StoreWriteFailed
from settings import get_data_dir, get_poll_seconds
from weight_tracker import UserGoals, WeightEntry, parse_date

logger = logging.getLogger(__name__)

# Failures that mean "can't reach the server", not "the server said no"
OFFLINE_ERRORS = (OSError, OperationalError)

CACHE_FILENAME = "local_cache.json"

Unsubscribe = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class EntriesSnapshot:
    entries: Tuple[WeightEntry, ...]
    from_cache: bool

    @property
    def empty(self) -> bool:
        return not self.entries


@dataclass(frozen=True)
class GoalSnapshot:
    goals: Optional[UserGoals]
    from_cache: bool

    @property
    def exists(self) -> bool:
        return self.goals is not None


class GoalEntryStore(Protocol):
    """What the sync controllers need from a store."""

    def subscribe_entries(
        self,
        user_id: str,
        on_data: Callable[[EntriesSnapshot], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe: ...

    def subscribe_goal(
        self,
        user_id: str,
        on_data: Callable[[GoalSnapshot], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe: ...

    async def read_goal_from_server(self, user_id: str) -> Optional[UserGoals]: ...

    async def read_entries_from_server(self, user_id: str) -> Tuple[WeightEntry, ...]: ...

    async def write_goal(self, user_id: str, goals: UserGoals) -> None: ...

    async def refresh(self, user_id: str) -> None: ...

    async def write_entry(self, user_id: str, entry: WeightEntry) -> None: ...

    async def delete_entry(self, user_id: str, entry_date: date) -> None: ...

    async def migrate_legacy_entries(self, user_id: str) -> int: ...


# -------------------------
# Local cache
# -------------------------

class LocalCache:
    """Per-user mirror of the last known server state, optionally kept on disk."""

    def __init__(self, path: Optional[str] = None):
        self._path = path
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, Any]] = self._load() if path else {}

    @classmethod
    def default(cls) -> "LocalCache":
        return cls(os.path.join(get_data_dir(), CACHE_FILENAME))

    def get_entries(self, user_id: str) -> Tuple[WeightEntry, ...]:
        rows = self._data.get(user_id, {}).get("entries", [])
        return tuple(WeightEntry.from_dict(r) for r in rows)

    def set_entries(self, user_id: str, entries: Tuple[WeightEntry, ...]) -> None:
        ordered = sorted(entries, key=lambda e: e.date)
        with self._lock:
            self._data.setdefault(user_id, {})["entries"] = [e.to_dict() for e in ordered]
            self._save()

    def put_entry(self, user_id: str, entry: WeightEntry) -> None:
        """Create or replace the cached entry for entry.date."""
        with self._lock:
            kept = [e for e in self.get_entries(user_id) if e.date != entry.date]
            self.set_entries(user_id, tuple(kept) + (entry,))

    def drop_entry(self, user_id: str, entry_date: date) -> None:
        with self._lock:
            self.set_entries(user_id, tuple(e for e in self.get_entries(user_id) if e.date != entry_date))

    def get_goals(self, user_id: str) -> Optional[UserGoals]:
        raw = self._data.get(user_id, {}).get("goals")
        return UserGoals.from_dict(raw) if raw else None

    def set_goals(self, user_id: str, goals: Optional[UserGoals]) -> None:
        with self._lock:
            self._data.setdefault(user_id, {})["goals"] = goals.to_dict() if goals else None
            self._save()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        assert self._path is not None
        if not os.path.exists(self._path):
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            txt = f.read().strip()
        if not txt:
            return {}
        try:
            data = json.loads(txt)
        except json.JSONDecodeError:
            # corruption guard: keep the raw text aside, start cold
            backup = f"{self._path}.corrupt-{int(time.time())}"
            os.replace(self._path, backup)
            logger.warning("Local cache was corrupt; moved to %s", backup)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        if not self._path:
            return
        tmp = self._path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self._path)


# -------------------------
# Store
# -------------------------

@dataclass(eq=False)
class _Listener:
    on_data: Callable[[Any], None]
    on_error: Optional[ErrorCallback]
    task: Optional[asyncio.Task] = None
    active: bool = True
    last: Any = field(default=None)

    def deliver(self, snapshot: Any) -> None:
        if not self.active or snapshot == self.last:
            return
        self.last = snapshot
        self.on_data(snapshot)

    def fail(self, error: Exception) -> None:
        if not self.active:
            return
        self.active = False
        if self.on_error is not None:
            self.on_error(error)
        else:
            logger.error("Unhandled subscription error: %s", error)


class DocumentStore:
    """Goal/entry store backed by storage.py with a local cache in front."""

    def __init__(self, backend=storage, cache: Optional[LocalCache] = None,
                 poll_interval: Optional[float] = None):
        self._backend = backend
        self._cache = cache if cache is not None else LocalCache()
        self._poll_interval = get_poll_seconds() if poll_interval is None else poll_interval
        self._entry_listeners: Dict[str, List[_Listener]] = defaultdict(list)
        self._goal_listeners: Dict[str, List[_Listener]] = defaultdict(list)

    # ---- subscriptions ----

    def subscribe_entries(self, user_id, on_data, on_error=None) -> Unsubscribe:
        return self._subscribe(
            self._entry_listeners, user_id, on_data, on_error,
            cached=lambda: EntriesSnapshot(self._cache.get_entries(user_id), from_cache=True),
            fetch=lambda: self._fetch_entries(user_id),
        )

    def subscribe_goal(self, user_id, on_data, on_error=None) -> Unsubscribe:
        return self._subscribe(
            self._goal_listeners, user_id, on_data, on_error,
            cached=lambda: GoalSnapshot(self._cache.get_goals(user_id), from_cache=True),
            fetch=lambda: self._fetch_goal(user_id),
        )

    def _subscribe(self, registry, user_id, on_data, on_error, cached, fetch) -> Unsubscribe:
        listener = _Listener(on_data, on_error)
        registry[user_id].append(listener)
        listener.task = asyncio.get_running_loop().create_task(self._serve(listener, cached, fetch))

        def unsubscribe() -> None:
            listener.active = False
            if listener.task is not None and not listener.task.done():
                listener.task.cancel()
            if listener in registry[user_id]:
                registry[user_id].remove(listener)

        return unsubscribe

    async def _serve(self, listener: _Listener, cached, fetch) -> None:
        listener.deliver(cached())
        while listener.active:
            try:
                snapshot = await fetch()
            except OFFLINE_ERRORS:
                logger.info("Backend unreachable; serving cached data", exc_info=True)
            except Exception as exc:
                error = StoreSubscriptionFailed(f"Subscription failed: {exc}")
                error.__cause__ = exc
                listener.fail(error)
                return
            else:
                listener.deliver(snapshot)
            if not self._poll_interval:
                return
            await asyncio.sleep(self._poll_interval)

    async def _fetch_entries(self, user_id: str) -> EntriesSnapshot:
        entries = tuple(await asyncio.to_thread(self._backend.get_entries_for_user, user_id))
        await self._mirror(self._cache.set_entries, user_id, entries)
        return EntriesSnapshot(entries, from_cache=False)

    async def _fetch_goal(self, user_id: str) -> GoalSnapshot:
        goals = await asyncio.to_thread(self._backend.get_goals_for_user, user_id)
        await self._mirror(self._cache.set_goals, user_id, goals)
        return GoalSnapshot(goals, from_cache=False)

    async def _mirror(self, update: Callable[..., None], *args: Any) -> None:
        """Apply a cache update in a worker thread."""
        try:
            await asyncio.to_thread(update, *args)
        except OSError:
            logger.warning("Could not update the local cache", exc_info=True)

    async def _refresh_goal(self, user_id: str) -> None:
        if not self._goal_listeners.get(user_id):
            return
        try:
            snapshot = await self._fetch_goal(user_id)
        except Exception:
            logger.warning("Could not re-read goals for %s", user_id, exc_info=True)
            return
        for listener in list(self._goal_listeners.get(user_id, [])):
            listener.deliver(snapshot)

    async def _refresh_entries(self, user_id: str) -> None:
        """Redeliver entries to this user's listeners after a write."""
        if not self._entry_listeners.get(user_id):
            return
        try:
            snapshot = await self._fetch_entries(user_id)
        except Exception:
            logger.warning("Could not re-read entries for %s; delivering cache", user_id, exc_info=True)
            snapshot = EntriesSnapshot(self._cache.get_entries(user_id), from_cache=True)
        for listener in list(self._entry_listeners.get(user_id, [])):
            listener.deliver(snapshot)

    async def refresh(self, user_id: str) -> None:
        """Re-read the backend and redeliver changes to this user's listeners."""
        await self._refresh_entries(user_id)
        await self._refresh_goal(user_id)

    # ---- one-shot operations ----

    async def read_goal_from_server(self, user_id: str) -> Optional[UserGoals]:
        try:
            return (await self._fetch_goal(user_id)).goals
        except Exception as exc:
            raise StoreReadFailed(f"Could not read goals for {user_id}") from exc

    async def read_entries_from_server(self, user_id: str) -> Tuple[WeightEntry, ...]:
        try:
            return (await self._fetch_entries(user_id)).entries
        except Exception as exc:
            raise StoreReadFailed(f"Could not read entries for {user_id}") from exc

    async def write_goal(self, user_id: str, goals: UserGoals) -> None:
        try:
            await asyncio.to_thread(self._backend.set_goals_for_user, user_id, goals)
        except Exception as exc:
            raise StoreWriteFailed(f"Could not save goals for {user_id}") from exc
        await self._mirror(self._cache.set_goals, user_id, goals)
        snapshot = GoalSnapshot(goals, from_cache=False)
        for listener in list(self._goal_listeners.get(user_id, [])):
            listener.deliver(snapshot)

    async def write_entry(self, user_id: str, entry: WeightEntry) -> None:
        try:
            await asyncio.to_thread(self._backend.upsert_entry_for_user, user_id, entry)
        except Exception as exc:
            raise StoreWriteFailed(f"Could not save entry for {entry.date}") from exc
        await self._mirror(self._cache.put_entry, user_id, entry)
        await self._refresh_entries(user_id)

    async def delete_entry(self, user_id: str, entry_date) -> None:
        entry_date = parse_date(entry_date)
        try:
            await asyncio.to_thread(self._backend.delete_entry_for_user, user_id, entry_date)
        except Exception as exc:
            raise StoreWriteFailed(f"Could not delete entry for {entry_date}") from exc
        await self._mirror(self._cache.drop_entry, user_id, entry_date)
        await self._refresh_entries(user_id)

    async def migrate_legacy_entries(self, user_id: str) -> int:
        try:
            count = await asyncio.to_thread(
                migrate_data.migrate_legacy_entries, user_id, None, self._backend
            )
        except Exception as exc:
            raise StoreWriteFailed(f"Legacy migration failed for {user_id}") from exc
        if count:
            await self._refresh_entries(user_id)
        return count

    def close(self) -> None:
        """Cancel every live subscription."""
        for registry in (self._entry_listeners, self._goal_listeners):
            for listeners in registry.values():
                for listener in listeners:
                    listener.active = False
                    if listener.task is not None and not listener.task.done():
                        listener.task.cancel()
            registry.clear()
