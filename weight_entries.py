#!/usr/bin/env python3

"""
Live list of a user's weight entries.

The list follows the store subscription. An empty list that only comes from
the local cache is ignored: it cannot be told apart from "cache not synced
yet", so the controller keeps loading until the server answers or data shows
up. Writes go straight to the store; the subscription delivers the result.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Optional, Tuple

from document_store import EntriesSnapshot
from sync import Activation, SyncController
from weight_tracker import WeightEntry, parse_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntriesState:
    entries: Tuple[WeightEntry, ...] = ()
    loading: bool = True
    error: Optional[Exception] = None


class EntrySyncController(SyncController[EntriesState]):

    def __init__(self, store):
        super().__init__(store, EntriesState())

    def set_user(self, user_id: Optional[str]) -> Activation:
        """Switch to user_id (or to nobody). Must run on the event loop."""
        activation = self._begin(user_id)
        if not activation.user_id:
            self._replace_state(EntriesState(entries=(), loading=False))
            return activation

        uid = activation.user_id
        self._replace_state(EntriesState(entries=(), loading=True))
        activation.spawn(self._migrate(uid), name=f"migrate-entries:{uid}")
        unsubscribe = self._store.subscribe_entries(
            uid,
            lambda snapshot: self._on_snapshot(activation, snapshot),
            lambda error: self._on_subscription_error(activation, error),
        )
        activation.add_cleanup(unsubscribe)
        return activation

    def add_entry(self, entry: WeightEntry) -> Awaitable[None]:
        """Create or replace the entry for entry.date. Raises Unauthenticated immediately."""
        user_id = self._require_user()
        return self._write(self._activation, self._store.write_entry(user_id, entry), "save", entry.date)

    def remove_entry(self, entry_date) -> Awaitable[None]:
        user_id = self._require_user()
        entry_date = parse_date(entry_date)
        return self._write(self._activation, self._store.delete_entry(user_id, entry_date), "delete", entry_date)

    # ---- internals ----

    def _on_snapshot(self, activation: Activation, snapshot: EntriesSnapshot) -> None:
        if not self._is_current(activation):
            return
        if snapshot.empty and snapshot.from_cache:
            logger.debug("Ignoring empty cache snapshot for %s", activation.user_id)
            return
        self._update_state(entries=tuple(snapshot.entries), loading=False)

    def _on_subscription_error(self, activation: Activation, error: Exception) -> None:
        if not self._is_current(activation):
            return
        logger.warning("Entries subscription failed for %s: %s", activation.user_id, error)
        activation.spawn(self._fallback_read(activation, error), name=f"entries-fallback:{activation.user_id}")

    async def _fallback_read(self, activation: Activation, subscription_error: Exception) -> None:
        try:
            entries = await self._store.read_entries_from_server(activation.user_id)
        except Exception:
            logger.error("Fallback entries read failed for %s", activation.user_id, exc_info=True)
            if self._is_current(activation):
                self._update_state(loading=False, error=subscription_error)
            return
        if self._is_current(activation):
            self._update_state(entries=tuple(entries), loading=False)

    async def _migrate(self, user_id: str) -> None:
        try:
            count = await self._store.migrate_legacy_entries(user_id)
        except Exception:
            logger.warning("Legacy entry migration failed for %s", user_id, exc_info=True)
            return
        if count:
            logger.info("Migrated %d legacy entries for %s", count, user_id)

    async def _write(self, activation: Optional[Activation], operation: Awaitable[None],
                     verb: str, entry_date: date) -> None:
        try:
            await operation
        except Exception as err:
            logger.error("Could not %s entry %s: %s", verb, entry_date, err)
            if activation is not None and self._is_current(activation):
                self._update_state(error=err)
            raise
