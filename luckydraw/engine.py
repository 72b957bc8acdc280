"""Draw engine: picks unique winners, drives the reel and persists results."""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from .animator import ReelAnimator, ReelPlan
from .cache import RewardCache
from .records import (
    DrawMode,
    DrawSettings,
    RewardRecord,
    eligible_participants,
    global_winners,
    recompute_remaining,
)
from .store import RewardStoreError

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    WON = "won"
    DECLINED = "declined"
    RACE_LOST = "race_lost"
    FAILED = "failed"
    ANIMATOR_UNAVAILABLE = "animator_unavailable"


@dataclass
class DrawStep:
    status: StepStatus
    reward_id: str
    winner: Optional[str] = None
    message: str = ""
    plan: Optional[ReelPlan] = None

    def to_payload(self) -> dict:
        return {
            "status": self.status.value,
            "winner": self.winner,
            "message": self.message,
            "reel": self.plan.to_payload() if self.plan is not None else None,
        }


@dataclass
class DrawSequence:
    reward_id: str
    mode: DrawMode
    steps: List[DrawStep] = field(default_factory=list)

    @property
    def winners(self) -> List[str]:
        return [step.winner for step in self.steps if step.status is StepStatus.WON]

    @property
    def aborted(self) -> bool:
        return any(
            step.status in (StepStatus.FAILED, StepStatus.ANIMATOR_UNAVAILABLE)
            for step in self.steps
        )


class DrawPresenter(Protocol):
    def cue(self, reward: RewardRecord, winner: str) -> None: ...

    def announce(self, reward: RewardRecord, winner: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingPresenter:
    """Presenter that only writes to the log; used by the HTTP draw endpoint."""

    def cue(self, reward: RewardRecord, winner: str) -> None:
        logger.info("Winner cue for %s: %s", reward.name, winner)

    def announce(self, reward: RewardRecord, winner: str) -> None:
        logger.info("Congratulations %s, winner of %s", winner, reward.name)

    def warn(self, message: str) -> None:
        logger.warning(message)

    def error(self, message: str) -> None:
        logger.error(message)


@dataclass
class Pacing:
    """Pauses between bulk draw steps; zero everywhere is valid."""

    congratulation_hold: float = 6.0
    congratulation_gap: float = 0.5
    silent_pause: float = 2.0

    def between_steps(self, show_congratulation: bool) -> float:
        if show_congratulation:
            return self.congratulation_hold + self.congratulation_gap
        return self.silent_pause


class DrawEngine:
    """Coordinates eligibility, the reel and the reward cache for one draw.

    Every step reads the participants, the settings and the reward snapshot
    afresh, and steps never overlap: the write of step N is confirmed or
    rolled back before step N+1 computes its eligible pool.
    """

    def __init__(
        self,
        cache: RewardCache,
        animator: ReelAnimator,
        participants: Callable[[], Sequence[str]],
        *,
        settings: Optional[Callable[[], DrawSettings]] = None,
        presenter: Optional[DrawPresenter] = None,
        pacing: Optional[Pacing] = None,
        settle_timeout: Optional[float] = 30.0,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._cache = cache
        self._animator = animator
        self._participants = participants
        self._settings = settings or DrawSettings
        self._presenter = presenter or LoggingPresenter()
        self._pacing = pacing or Pacing()
        self._settle_timeout = settle_timeout
        self._rng = rng or random.Random()
        self._sleep = sleep

    def eligible(self) -> List[str]:
        """Participants who have not won anything, per the latest snapshot."""
        return eligible_participants(list(self._participants()), self._cache.snapshot())

    def draw(self, reward_id: str, mode: Optional[DrawMode] = None) -> DrawSequence:
        """Draw for ``reward_id`` using ``mode`` or the configured draw mode."""
        settings = self._settings()
        mode = mode or settings.draw_mode
        if mode is DrawMode.ALL_AT_ONCE:
            return self.draw_all(reward_id)
        sequence = DrawSequence(reward_id=reward_id, mode=DrawMode.ONE_BY_ONE)
        sequence.steps.append(self.draw_one(reward_id))
        return sequence

    def draw_one(self, reward_id: str) -> DrawStep:
        settings = self._settings()
        step = self._step(reward_id)
        if step.status is StepStatus.WON and settings.show_congratulation_modal:
            self._presenter.announce(self._reward_or_stub(reward_id), step.winner)
        return step

    def draw_all(self, reward_id: str) -> DrawSequence:
        """Draw every remaining winner of a reward, one step after another."""
        sequence = DrawSequence(reward_id=reward_id, mode=DrawMode.ALL_AT_ONCE)
        reward = self._cache.get(reward_id)
        pool = self.eligible()
        if reward is None or reward.remaining_quantity <= 0 or not pool:
            sequence.steps.append(self._decline(reward_id, reward, pool))
            return sequence

        quantity_to_draw = min(reward.remaining_quantity, len(pool))
        logger.info("Bulk draw for %s: %s winners planned", reward.name, quantity_to_draw)
        last_won: Optional[DrawStep] = None
        announced = False
        for index in range(quantity_to_draw):
            step = self._step(reward_id)
            if step.status is StepStatus.DECLINED:
                # Quota or pool ran out mid-sequence; nothing left to draw.
                if not sequence.steps:
                    sequence.steps.append(step)
                break
            sequence.steps.append(step)
            if step.status in (StepStatus.FAILED, StepStatus.ANIMATOR_UNAVAILABLE):
                break
            if step.status is not StepStatus.WON:
                continue
            last_won = step

            settings = self._settings()
            latest = self._reward_or_stub(reward_id)
            is_last = (
                index == quantity_to_draw - 1
                or latest.remaining_quantity <= 0
                or not self.eligible()
            )
            if is_last:
                if settings.show_congratulation_modal:
                    self._presenter.announce(latest, step.winner)
                announced = True
                break
            self._presenter.cue(latest, step.winner)
            pause = self._pacing.between_steps(settings.show_congratulation_modal)
            if pause > 0:
                self._sleep(pause)

        # A later step lost its race or failed: the final winner still gets the modal.
        if last_won is not None and not announced and self._settings().show_congratulation_modal:
            self._presenter.announce(self._reward_or_stub(reward_id), last_won.winner)
        return sequence

    def edit_reward(
        self,
        reward_id: str,
        *,
        name: Optional[str] = None,
        image: Optional[str] = None,
        total_quantity: Optional[int] = None,
    ) -> RewardRecord:
        """Update reward details, recomputing the remaining quota from its winners."""
        reward = self._cache.get(reward_id)
        if reward is None:
            raise RewardStoreError(f"Reward {reward_id} is not in the cache")
        total = reward.total_quantity if total_quantity is None else int(total_quantity)
        changes = {
            "name": reward.name if name is None else name,
            "image": reward.image if image is None else image,
            "totalQuantity": total,
            "remainingQuantity": recompute_remaining(total, len(reward.winners)),
            "winners": list(reward.winners),
        }
        return self._cache.mutate(reward_id, changes)

    # Internals ----------------------------------------------------------

    def _reward_or_stub(self, reward_id: str) -> RewardRecord:
        reward = self._cache.get(reward_id)
        if reward is not None:
            return reward
        return RewardRecord(
            id=reward_id, name=reward_id, image="", total_quantity=0, remaining_quantity=0
        )

    def _decline(
        self, reward_id: str, reward: Optional[RewardRecord], pool: Sequence[str]
    ) -> DrawStep:
        if reward is None:
            message = f"Reward {reward_id} does not exist"
        elif reward.remaining_quantity <= 0:
            message = f"{reward.name} has no remaining quantity"
        else:
            message = "No eligible participants left"
        logger.info("Draw declined for %s: %s", reward_id, message)
        return DrawStep(status=StepStatus.DECLINED, reward_id=reward_id, message=message)

    def _step(self, reward_id: str) -> DrawStep:
        reward = self._cache.get(reward_id)
        pool = self.eligible()
        if reward is None or reward.remaining_quantity <= 0 or not pool:
            return self._decline(reward_id, reward, pool)

        winner = self._rng.choice(pool)
        # The returned future is the settle signal; no callback is needed.
        future = self._animator.animate(None, pool, target=winner)
        if future is None:
            message = "The reel is busy or has nothing to show"
            self._presenter.error(message)
            return DrawStep(
                status=StepStatus.ANIMATOR_UNAVAILABLE, reward_id=reward_id, message=message
            )
        plan = self._animator.last_plan
        try:
            settled = future.result(timeout=self._settle_timeout)
        except FutureTimeoutError:
            message = "The reel did not settle in time"
            self._presenter.error(message)
            return DrawStep(
                status=StepStatus.ANIMATOR_UNAVAILABLE,
                reward_id=reward_id,
                message=message,
                plan=plan,
            )
        except Exception as exc:
            message = f"The reel failed: {exc}"
            self._presenter.error(message)
            return DrawStep(
                status=StepStatus.ANIMATOR_UNAVAILABLE,
                reward_id=reward_id,
                message=message,
                plan=plan,
            )
        return self._commit(reward_id, settled, plan)

    def _commit(self, reward_id: str, winner: str, plan: Optional[ReelPlan]) -> DrawStep:
        latest = self._cache.get(reward_id)
        if latest is None:
            message = f"Reward {reward_id} was removed during the draw"
        elif latest.remaining_quantity <= 0:
            message = f"{latest.name} ran out of quantity during the draw"
        elif winner in global_winners(self._cache.snapshot()):
            message = f"{winner} has already won a reward"
        else:
            message = ""
        if message:
            self._presenter.warn(message)
            return DrawStep(
                status=StepStatus.RACE_LOST,
                reward_id=reward_id,
                winner=winner,
                message=message,
                plan=plan,
            )

        changes = {
            "remainingQuantity": latest.remaining_quantity - 1,
            "winners": list(latest.winners) + [winner],
        }
        try:
            self._cache.mutate(reward_id, changes)
        except RewardStoreError as exc:
            message = f"Failed to save winner {winner}: {exc}"
            logger.exception("Persisting winner for %s failed", reward_id)
            self._presenter.error(message)
            return DrawStep(
                status=StepStatus.FAILED,
                reward_id=reward_id,
                winner=winner,
                message=message,
                plan=plan,
            )
        logger.info("Winner for %s: %s", latest.name, winner)
        return DrawStep(status=StepStatus.WON, reward_id=reward_id, winner=winner, plan=plan)
