#!/usr/bin/env python3

"""
The user's single current goal, kept in sync with the store.

A missing goal document is ambiguous: the user may never have set goals, or
the local cache may simply not know yet (cold cache, offline). The controller
resolves that per activation with a small state machine:

    NO_USER                 no user id; goals=None
    LOADING  -> RESOLVED    a value, or an absence confirmed by the server
             -> ERROR       subscription failed and the fallback read failed too

Rules, in order of arrival:

* a snapshot carrying a value is accepted at once, even from the cache;
* an absent snapshot is accepted once absence is server-confirmed (a server
  snapshot, or a previous forced read that found nothing);
* an unconfirmed absence triggers a forced server read; if that read fails
  the goal is taken to be absent rather than waiting forever;
* a subscription error triggers the same read; if it fails too, ERROR;
* a safety-net timer races the ``settled`` future and forces the read if
  nothing settled in time. Whichever arm loses is a no-op.

Only one forced read runs at a time. Its result is dropped if newer state
(a live snapshot or a save) landed while it was in flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Optional

from document_store import GoalSnapshot
from settings import get_safety_net_seconds
from sync import Activation, SyncController
from weight_tracker import UserGoals

logger = logging.getLogger(__name__)


class GoalStatus(str, Enum):
    NO_USER = "no_user"
    LOADING = "loading"
    RESOLVED = "resolved"
    ERROR = "error"


@dataclass(frozen=True)
class GoalsState:
    status: GoalStatus = GoalStatus.LOADING
    goals: Optional[UserGoals] = None
    error: Optional[Exception] = None

    @property
    def loading(self) -> bool:
        return self.status is GoalStatus.LOADING


class _Reconciliation:
    """Bookkeeping for one activation."""

    def __init__(self, activation: Activation):
        self.activation = activation
        self.settled: asyncio.Future = asyncio.get_running_loop().create_future()
        self.absence_confirmed = False
        self.subscription_error: Optional[Exception] = None
        self.fallback: Optional[asyncio.Task] = None
        # bumped on every applied state; stale forced reads compare against it
        self.version = 0


class GoalSyncController(SyncController[GoalsState]):

    def __init__(self, store, safety_net_delay: Optional[float] = None):
        super().__init__(store, GoalsState())
        self.safety_net_delay = get_safety_net_seconds() if safety_net_delay is None else safety_net_delay
        self._cycle: Optional[_Reconciliation] = None

    def set_user(self, user_id: Optional[str]) -> Activation:
        """Switch to user_id (or to nobody). Must run on the event loop."""
        activation = self._begin(user_id)
        self._cycle = None
        if not activation.user_id:
            self._replace_state(GoalsState(status=GoalStatus.NO_USER))
            return activation

        uid = activation.user_id
        cycle = _Reconciliation(activation)
        self._cycle = cycle
        activation.add_cleanup(cycle.settled.cancel)
        self._replace_state(GoalsState(status=GoalStatus.LOADING))

        unsubscribe = self._store.subscribe_goal(
            uid,
            lambda snapshot: self._on_snapshot(cycle, snapshot),
            lambda error: self._on_subscription_error(cycle, error),
        )
        activation.add_cleanup(unsubscribe)
        activation.spawn(self._safety_net(cycle), name=f"goals-safety-net:{uid}")
        return activation

    def save_goals(self, goals: UserGoals) -> Awaitable[None]:
        """Write goals wholesale and show them right away. Raises Unauthenticated immediately."""
        user_id = self._require_user()
        return self._save(self._cycle, user_id, goals)

    async def wait_resolved(self, timeout: Optional[float] = None) -> GoalsState:
        """Wait until the current activation leaves LOADING."""
        cycle = self._cycle
        if cycle is not None:
            await asyncio.wait_for(asyncio.shield(cycle.settled), timeout)
        return self._state

    # ---- transitions ----

    def _on_snapshot(self, cycle: _Reconciliation, snapshot: GoalSnapshot) -> None:
        if not self._is_live(cycle):
            return
        if snapshot.goals is not None:
            self._resolve(cycle, snapshot.goals)
            return
        if not snapshot.from_cache:
            cycle.absence_confirmed = True
        if cycle.absence_confirmed:
            self._resolve(cycle, None)
            return
        logger.debug("No goals in cache for %s; checking the server", cycle.activation.user_id)
        self._start_forced_read(cycle, "absent in cache")

    def _on_subscription_error(self, cycle: _Reconciliation, error: Exception) -> None:
        if not self._is_live(cycle):
            return
        logger.warning("Goals subscription failed for %s: %s", cycle.activation.user_id, error)
        cycle.subscription_error = error
        self._start_forced_read(cycle, "subscription error")

    async def _safety_net(self, cycle: _Reconciliation) -> None:
        done, _ = await asyncio.wait({cycle.settled}, timeout=self.safety_net_delay)
        if done or not self._is_live(cycle):
            return
        logger.info(
            "Goals for %s still loading after %.1fs; forcing a server read",
            cycle.activation.user_id, self.safety_net_delay,
        )
        self._start_forced_read(cycle, "safety net")

    def _start_forced_read(self, cycle: _Reconciliation, reason: str) -> asyncio.Task:
        if cycle.fallback is not None and not cycle.fallback.done():
            return cycle.fallback
        cycle.fallback = cycle.activation.spawn(
            self._forced_read(cycle, reason),
            name=f"goals-server-read:{cycle.activation.user_id}",
        )
        return cycle.fallback

    async def _forced_read(self, cycle: _Reconciliation, reason: str) -> None:
        user_id = cycle.activation.user_id
        version = cycle.version
        try:
            goals = await self._store.read_goal_from_server(user_id)
        except Exception as exc:
            if not self._is_live(cycle) or cycle.version != version:
                return
            if cycle.subscription_error is not None:
                logger.error("Fallback goals read failed for %s: %s", user_id, exc)
                self._fail(cycle, cycle.subscription_error)
            else:
                logger.warning("Server read failed for %s (%s); assuming no goals: %s", user_id, reason, exc)
                self._resolve(cycle, None)
            return

        if not self._is_live(cycle):
            return
        if goals is None:
            cycle.absence_confirmed = True
        if cycle.version != version:
            logger.debug("Dropping server read for %s; newer state already applied", user_id)
            return
        self._resolve(cycle, goals)

    async def _save(self, cycle: Optional[_Reconciliation], user_id: str, goals: UserGoals) -> None:
        try:
            await self._store.write_goal(user_id, goals)
        except Exception as err:
            logger.error("Could not save goals for %s: %s", user_id, err)
            raise
        if cycle is not None and self._is_live(cycle):
            self._resolve(cycle, goals)

    def _resolve(self, cycle: _Reconciliation, goals: Optional[UserGoals]) -> None:
        cycle.version += 1
        self._replace_state(GoalsState(status=GoalStatus.RESOLVED, goals=goals))
        if not cycle.settled.done():
            cycle.settled.set_result(goals)

    def _fail(self, cycle: _Reconciliation, error: Exception) -> None:
        cycle.version += 1
        self._replace_state(GoalsState(status=GoalStatus.ERROR, goals=self._state.goals, error=error))
        if not cycle.settled.done():
            cycle.settled.set_result(None)

    def _is_live(self, cycle: _Reconciliation) -> bool:
        return cycle is self._cycle and self._is_current(cycle.activation)
