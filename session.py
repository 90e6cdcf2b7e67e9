#!/usr/bin/env python3

"""
Hosts the store and both sync controllers on a background event loop.

Streamlit reruns the script synchronously on every interaction, so the
asyncio side lives in a daemon thread. The script reads the controllers'
state snapshots directly (they are immutable and swapped atomically) and
sends work to the loop with :meth:`TrackerSession.call`.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional

from document_store import DocumentStore, LocalCache
from goals import GoalsState, GoalSyncController
from weight_entries import EntriesState, EntrySyncController

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 15.0


class TrackerSession:

    def __init__(self, store=None, safety_net_delay: Optional[float] = None):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="tracker-sync", daemon=True)
        self._thread.start()
        self._user_id: Optional[str] = None
        self.store = store if store is not None else DocumentStore(cache=LocalCache.default())
        self.entries = EntrySyncController(self.store)
        self.goals = GoalSyncController(self.store, safety_net_delay)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _on_loop(self, fn: Callable[..., Any], *args: Any):
        """Run a plain callable on the loop thread and return a future for its result."""
        async def runner():
            return fn(*args)
        return asyncio.run_coroutine_threadsafe(runner(), self._loop)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def entries_state(self) -> EntriesState:
        return self.entries.state

    @property
    def goals_state(self) -> GoalsState:
        return self.goals.state

    def set_user(self, user_id: Optional[str]) -> None:
        """Point both controllers at user_id. Called again for the same user, re-read the server."""
        if user_id == self._user_id:
            self.refresh()
            return
        self._user_id = user_id
        logger.info("Activating sync for user %s", user_id)
        self._on_loop(self._activate, user_id).result(DEFAULT_CALL_TIMEOUT)

    def refresh(self) -> concurrent.futures.Future:
        """Start a background re-read of the active user's goals and entries.

        Changes made on another device reach the controllers through their
        subscriptions. The returned future can be ignored; failures are logged
        by the store.
        """
        user_id = self._user_id
        if not user_id:
            future: concurrent.futures.Future = concurrent.futures.Future()
            future.set_result(None)
            return future
        return asyncio.run_coroutine_threadsafe(self.store.refresh(user_id), self._loop)

    def _activate(self, user_id: Optional[str]) -> None:
        self.entries.set_user(user_id)
        self.goals.set_user(user_id)

    def call(self, make_awaitable: Callable[[], Awaitable[Any]],
             timeout: float = DEFAULT_CALL_TIMEOUT) -> Any:
        """Run make_awaitable() on the loop and block for its result (or exception)."""
        async def runner():
            return await make_awaitable()
        return asyncio.run_coroutine_threadsafe(runner(), self._loop).result(timeout)

    def wait_for_goals(self, timeout: float) -> GoalsState:
        try:
            return self.call(lambda: self.goals.wait_resolved(timeout), timeout + 1)
        except (TimeoutError, concurrent.futures.CancelledError):
            return self.goals.state

    def close(self) -> None:
        def shutdown() -> None:
            self.entries.close()
            self.goals.close()
            if isinstance(self.store, DocumentStore):
                self.store.close()
        self._on_loop(shutdown).result(DEFAULT_CALL_TIMEOUT)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
