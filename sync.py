#!/usr/bin/env python3

"""
Plumbing shared by the entry and goal sync controllers.

A controller serves one user at a time. ``set_user`` returns an
:class:`Activation`; cancelling it (explicitly, on the next ``set_user`` or on
``close``) tears down the subscription, timers and background tasks opened
for that user, so nothing from a previous user can touch current state.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Coroutine, Generic, List, Optional, TypeVar

from errors import Unauthenticated

logger = logging.getLogger(__name__)

S = TypeVar("S")
StateListener = Callable[[Any], None]


class Activation:
    """Cancellation token for one user's subscription cycle."""

    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id
        self.cancelled = False
        self._cleanups: List[Callable[[], None]] = []

    def add_cleanup(self, cleanup: Callable[[], None]) -> None:
        if self.cancelled:
            cleanup()
        else:
            self._cleanups.append(cleanup)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Run a coroutine that dies with this activation."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        task.add_done_callback(_log_task_failure)
        self.add_cleanup(task.cancel)
        return task

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        cleanups, self._cleanups = self._cleanups, []
        for cleanup in reversed(cleanups):
            cleanup()


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)


class SyncController(Generic[S]):
    """State holder with listeners; the state object is replaced, never mutated."""

    def __init__(self, store, initial_state: S):
        self._store = store
        self._state = initial_state
        self._listeners: List[StateListener] = []
        self._activation: Optional[Activation] = None

    @property
    def state(self) -> S:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._activation.user_id if self._activation else None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def close(self) -> None:
        if self._activation is not None:
            self._activation.cancel()

    def _begin(self, user_id: Optional[str]) -> Activation:
        if self._activation is not None:
            self._activation.cancel()
        self._activation = Activation(user_id or None)
        return self._activation

    def _is_current(self, activation: Activation) -> bool:
        return activation is self._activation and not activation.cancelled

    def _require_user(self) -> str:
        user_id = self.user_id
        if not user_id:
            raise Unauthenticated()
        return user_id

    def _replace_state(self, state: S) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")

    def _update_state(self, **changes: Any) -> None:
        self._replace_state(replace(self._state, **changes))
