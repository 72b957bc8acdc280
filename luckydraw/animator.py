"""Slot-machine reel that lands on a winner chosen before it starts spinning."""

from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

ITEM_HEIGHT = 90
NOISE_LENGTH = 40
TRAILING_FILLERS = 2
SPIN_DURATION = 5.0
SETTLE_HOLD = 0.5
FRAME_INTERVAL = 1 / 30
EASE_OUT = (0.25, 1.0, 0.5, 1.0)


def cubic_bezier(x1: float, y1: float, x2: float, y2: float) -> Callable[[float], float]:
    """Return the CSS ``cubic-bezier(x1, y1, x2, y2)`` timing function."""

    def _coord(t: float, p1: float, p2: float) -> float:
        return 3 * (1 - t) ** 2 * t * p1 + 3 * (1 - t) * t ** 2 * p2 + t ** 3

    def _slope(t: float, p1: float, p2: float) -> float:
        return 3 * (1 - t) ** 2 * p1 + 6 * (1 - t) * t * (p2 - p1) + 3 * t ** 2 * (1 - p2)

    def _solve_t(x: float) -> float:
        t = x
        for _ in range(8):
            error = _coord(t, x1, x2) - x
            if abs(error) < 1e-6:
                return min(1.0, max(0.0, t))
            slope = _slope(t, x1, x2)
            if abs(slope) < 1e-6:
                break
            t -= error / slope
        # Newton did not converge; fall back to bisection.
        low, high = 0.0, 1.0
        t = x
        while high - low > 1e-6:
            if _coord(t, x1, x2) < x:
                low = t
            else:
                high = t
            t = (low + high) / 2
        return t

    def timing(progress: float) -> float:
        if progress <= 0:
            return 0.0
        if progress >= 1:
            return 1.0
        return _coord(_solve_t(progress), y1, y2)

    return timing


class ReelState(str, Enum):
    IDLE = "idle"
    SPINNING = "spinning"
    SETTLED = "settled"


@dataclass(frozen=True)
class ReelPlan:
    items: Tuple[str, ...]
    target_index: int
    item_height: int
    duration: float
    easing: Tuple[float, float, float, float] = EASE_OUT

    @property
    def winner(self) -> str:
        return self.items[self.target_index]

    @property
    def target_offset(self) -> float:
        # The payline shows three rows; the winner sits in the middle one.
        return float((self.target_index - 1) * self.item_height)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "items": list(self.items),
            "targetIndex": self.target_index,
            "targetOffset": self.target_offset,
            "itemHeight": self.item_height,
            "durationMs": int(self.duration * 1000),
            "easing": list(self.easing),
        }


class ReelRenderer(Protocol):
    def start(self, plan: ReelPlan) -> None: ...

    def frame(self, plan: ReelPlan, offset: float) -> None: ...

    def settle(self, plan: ReelPlan) -> None: ...


class NullRenderer:
    def start(self, plan: ReelPlan) -> None:
        pass

    def frame(self, plan: ReelPlan, offset: float) -> None:
        pass

    def settle(self, plan: ReelPlan) -> None:
        pass


class ReelAnimator:
    """Runs one reel spin at a time on a worker thread.

    ``animate`` returns a :class:`~concurrent.futures.Future` that resolves with
    the winner once the reel has settled and ``on_settle`` has been called.
    With ``realtime=False`` the reel is planned but not played back, so a
    remote screen can replay ``last_plan`` at its own pace.
    """

    def __init__(
        self,
        *,
        renderer: Optional[ReelRenderer] = None,
        duration: float = SPIN_DURATION,
        hold: float = SETTLE_HOLD,
        noise_length: int = NOISE_LENGTH,
        trailing: int = TRAILING_FILLERS,
        item_height: int = ITEM_HEIGHT,
        frame_interval: float = FRAME_INTERVAL,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        realtime: bool = True,
    ) -> None:
        self._renderer = renderer or NullRenderer()
        self._duration = max(0.0, duration)
        self._hold = max(0.0, hold)
        self._noise_length = noise_length
        self._trailing = trailing
        self._item_height = item_height
        self._frame_interval = frame_interval
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._realtime = realtime
        self._easing = cubic_bezier(*EASE_OUT)
        self._state = ReelState.IDLE
        self._state_lock = threading.Lock()
        self.last_plan: Optional[ReelPlan] = None

    @property
    def state(self) -> ReelState:
        return self._state

    def build_reel(self, pool: Sequence[str], target: str) -> ReelPlan:
        items: List[str] = [""]
        items.extend(self._rng.choice(pool) for _ in range(self._noise_length))
        items.append(target)
        target_index = len(items) - 1
        items.extend(self._rng.choice(pool) for _ in range(self._trailing))
        return ReelPlan(
            items=tuple(items),
            target_index=target_index,
            item_height=self._item_height,
            duration=self._duration,
        )

    def animate(
        self,
        on_settle: Optional[Callable[[str], None]],
        pool: Sequence[str],
        target: Optional[str] = None,
    ) -> Optional[Future]:
        """Spin towards ``target`` (or a random pool member) and settle on it.

        The returned future resolves with the winner after ``on_settle`` (when
        given) has run, so callers may wait on it instead of passing a
        callback. Returns ``None`` without doing anything when a spin is
        already running or ``pool`` is empty.
        """
        pool = list(pool)
        if not pool:
            return None
        with self._state_lock:
            if self._state is not ReelState.IDLE:
                return None
            self._state = ReelState.SPINNING

        winner = target if target is not None else self._rng.choice(pool)
        plan = self.build_reel(pool, winner)
        self.last_plan = plan
        future: Future = Future()
        future.set_running_or_notify_cancel()
        worker = threading.Thread(
            target=self._run,
            args=(plan, on_settle, future),
            name="luckydraw-reel",
            daemon=True,
        )
        worker.start()
        return future

    def _run(
        self, plan: ReelPlan, on_settle: Optional[Callable[[str], None]], future: Future
    ) -> None:
        try:
            self._spin(plan)
            self._state = ReelState.SETTLED
            self._renderer.settle(plan)
            if self._hold and self._realtime:
                self._sleep(self._hold)
        except Exception as exc:
            logger.exception("Reel animation failed")
            self._state = ReelState.IDLE
            future.set_exception(exc)
            return

        self._state = ReelState.IDLE
        try:
            if on_settle is not None:
                on_settle(plan.winner)
        except Exception as exc:
            logger.exception("Reel settle callback failed")
            future.set_exception(exc)
            return
        future.set_result(plan.winner)

    def _spin(self, plan: ReelPlan) -> None:
        self._renderer.start(plan)
        target = plan.target_offset
        if not self._realtime or plan.duration <= 0:
            self._renderer.frame(plan, target)
            return
        started = self._clock()
        while True:
            progress = (self._clock() - started) / plan.duration
            if progress >= 1:
                break
            self._renderer.frame(plan, self._easing(progress) * target)
            self._sleep(self._frame_interval)
        self._renderer.frame(plan, target)
