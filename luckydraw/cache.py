"""In-memory reward cache with optimistic updates.

The cache is the single source of truth the draw engine reads before every
draw step. Writes go through :meth:`RewardCache.mutate`, a two-phase
operation: the change is applied locally first (``pending``), then either
replaced by the store's answer (``committed``) or undone (``rolled_back``).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .records import RewardRecord
from .store import RewardStore, RewardStoreError

logger = logging.getLogger(__name__)

REFRESH_ATTEMPTS = 3


class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class MutationStateError(Exception):
    """Raised when a mutation is reconciled or rolled back twice."""


@dataclass(eq=False)
class PendingMutation:
    reward_id: str
    changes: Dict[str, Any]
    previous: Tuple[RewardRecord, ...]
    state: MutationState = MutationState.PENDING
    result: Optional[RewardRecord] = None


class Poller:
    """Calls ``action`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, action: Callable[[], Any], interval: float, *, name: str) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._action = action
        self._interval = interval
        self._name = name
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._action()
            except Exception as exc:
                logger.warning("Background refresh %s failed: %s", self._name, exc)


class RewardCache:
    def __init__(self, store: RewardStore, *, refresh_interval: float = 2.0) -> None:
        self._store = store
        self._lock = threading.RLock()
        self._rewards: List[RewardRecord] = []
        # Bumped by every local write; a refresh that overlaps one is discarded.
        self._version = 0
        self._pending: List[PendingMutation] = []
        self._listeners: List[Callable[[List[RewardRecord]], None]] = []
        self._poller = Poller(self.refresh, refresh_interval, name="luckydraw-rewards")

    # Reads --------------------------------------------------------------

    def snapshot(self) -> List[RewardRecord]:
        with self._lock:
            return list(self._rewards)

    def get(self, reward_id: str) -> Optional[RewardRecord]:
        with self._lock:
            for reward in self._rewards:
                if reward.id == reward_id:
                    return reward
        return None

    def subscribe(self, listener: Callable[[List[RewardRecord]], None]) -> None:
        self._listeners.append(listener)

    # Store synchronisation ----------------------------------------------

    def refresh(self) -> List[RewardRecord]:
        """Reload every reward from the store.

        Changes of still-pending mutations are laid over the fresh data so an
        in-flight draw never disappears from the snapshot. A listing fetched
        while a local write started or finished may predate that write, so it
        is fetched again; after ``REFRESH_ATTEMPTS`` the cache is left as is.
        """
        for _ in range(REFRESH_ATTEMPTS):
            with self._lock:
                version = self._version
            fresh = self._store.list()
            with self._lock:
                if self._version != version:
                    continue
                rewards = list(fresh)
                for mutation in self._pending:
                    rewards = [
                        reward.merged(mutation.changes)
                        if reward.id == mutation.reward_id
                        else reward
                        for reward in rewards
                    ]
                self._rewards = rewards
            self._notify()
            return self.snapshot()
        logger.info("Reward refresh skipped: local writes kept overlapping it")
        return self.snapshot()

    def start_polling(self) -> None:
        self._poller.start()

    def stop_polling(self) -> None:
        self._poller.stop()

    # Optimistic writes ----------------------------------------------------

    def apply_optimistic(self, reward_id: str, changes: Dict[str, Any]) -> PendingMutation:
        with self._lock:
            previous = tuple(self._rewards)
            self._rewards = [
                reward.merged(changes) if reward.id == reward_id else reward
                for reward in self._rewards
            ]
            mutation = PendingMutation(
                reward_id=reward_id, changes=dict(changes), previous=previous
            )
            self._pending.append(mutation)
            self._version += 1
        self._notify()
        return mutation

    def reconcile(self, mutation: PendingMutation, server_record: RewardRecord) -> None:
        with self._lock:
            self._finish(mutation, MutationState.COMMITTED)
            self._version += 1
            mutation.result = server_record
            replaced = False
            rewards = []
            for reward in self._rewards:
                if reward.id == server_record.id:
                    rewards.append(server_record)
                    replaced = True
                else:
                    rewards.append(reward)
            if not replaced:
                rewards.append(server_record)
            self._rewards = rewards
        self._notify()

    def rollback(self, mutation: PendingMutation) -> None:
        with self._lock:
            self._finish(mutation, MutationState.ROLLED_BACK)
            self._version += 1
            self._rewards = list(mutation.previous)
        self._notify()

    def mutate(self, reward_id: str, changes: Dict[str, Any]) -> RewardRecord:
        """Apply ``changes`` optimistically and persist them with one store update."""
        mutation = self.apply_optimistic(reward_id, changes)
        try:
            record = self._store.update(reward_id, changes)
        except RewardStoreError:
            self.rollback(mutation)
            raise
        except Exception as exc:
            self.rollback(mutation)
            raise RewardStoreError(f"Failed to update reward {reward_id}: {exc}") from exc
        self.reconcile(mutation, record)
        return record

    def _finish(self, mutation: PendingMutation, state: MutationState) -> None:
        if mutation.state is not MutationState.PENDING:
            raise MutationStateError(
                f"Mutation for {mutation.reward_id} is already {mutation.state.value}"
            )
        mutation.state = state
        if mutation in self._pending:
            self._pending.remove(mutation)

    def _notify(self) -> None:
        rewards = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(rewards)
            except Exception:
                logger.exception("Reward cache listener failed")


class ValueSource:
    """Cached value refreshed from a loader, optionally on a background poll.

    Used for the participant roster and the presentation settings, which are
    read fresh before each draw step but change rarely.
    """

    def __init__(
        self,
        loader: Callable[[], Any],
        *,
        initial: Any = None,
        refresh_interval: float = 2.0,
        name: str = "luckydraw-source",
    ) -> None:
        self._loader = loader
        self._value = initial
        self._lock = threading.Lock()
        self._poller = Poller(self.refresh, refresh_interval, name=name)

    def get(self) -> Any:
        with self._lock:
            return self._value

    def refresh(self) -> Any:
        value = self._loader()
        with self._lock:
            self._value = value
        return value

    def start_polling(self) -> None:
        self._poller.start()

    def stop_polling(self) -> None:
        self._poller.stop()

    def __call__(self) -> Any:
        return self.get()
