#!/usr/bin/env python3
"""
Run the lucky draw presentation in a terminal against a running backend.

Usage:
    python run_lucky_draw.py --base-url http://localhost:8000 --reward 1718000000000
    python run_lucky_draw.py --base-url http://localhost:8000 --list

The reel, the pacing between bulk draw steps and the winner announcements are
rendered locally; every winner is written back through the HTTP API. Reward,
roster and settings changes made elsewhere (e.g. the admin page) are picked
up by polling, or immediately when --redis-url is given.
"""

import argparse
import logging
import sys
from typing import List, Optional

try:
    import requests  # noqa: F401
except ModuleNotFoundError as exc:  # pragma: no cover - runtime dependency notice
    raise SystemExit(
        "The run_lucky_draw script requires the 'requests' package. "
        "Install it via `pip install requests` and rerun."
    ) from exc

from luckydraw.animator import ReelAnimator, ReelPlan
from luckydraw.cache import RewardCache, ValueSource
from luckydraw.client import LuckyDrawClient
from luckydraw.engine import DrawEngine, Pacing, StepStatus
from luckydraw.notifications import DEFAULT_CHANNEL, ChangeSubscriber
from luckydraw.records import DrawMode, RewardRecord
from luckydraw.store import RewardStoreError

VISIBLE_ROWS = 3
REEL_WIDTH = 36


class TerminalReel:
    """Draws the three visible reel rows on one refreshed terminal line."""

    def __init__(self, stream=sys.stdout) -> None:
        self.stream = stream

    def _rows(self, plan: ReelPlan, offset: float) -> List[str]:
        top = int(offset // plan.item_height)
        rows = []
        for index in range(top, top + VISIBLE_ROWS):
            rows.append(plan.items[index] if 0 <= index < len(plan.items) else "")
        return rows

    def _write(self, text: str) -> None:
        self.stream.write("\r" + text.ljust(REEL_WIDTH * VISIBLE_ROWS))
        self.stream.flush()

    def start(self, plan: ReelPlan) -> None:
        self.stream.write("\n")

    def frame(self, plan: ReelPlan, offset: float) -> None:
        upper, middle, lower = self._rows(plan, offset)
        self._write(f"  {upper[:REEL_WIDTH - 4]} | ▶ {middle[:REEL_WIDTH]} ◀ | {lower[:REEL_WIDTH - 4]}")

    def settle(self, plan: ReelPlan) -> None:
        self._write(f"  ★ {plan.winner} ★")
        self.stream.write("\n")
        self.stream.flush()


class TerminalPresenter:
    def __init__(self, audio_url: str = "") -> None:
        self.audio_url = audio_url

    def cue(self, reward: RewardRecord, winner: str) -> None:
        sound = f" (♪ {self.audio_url})" if self.audio_url else ""
        print(f"[winner] {winner} → {reward.name}{sound}")

    def announce(self, reward: RewardRecord, winner: str) -> None:
        print("")
        print("=" * 48)
        print(f"  Congratulations, {winner}!")
        print(f"  You won: {reward.name}")
        print("=" * 48)

    def warn(self, message: str) -> None:
        print(f"[warning] {message}")

    def error(self, message: str) -> None:
        print(f"[error] {message}", file=sys.stderr)


def _print_rewards(rewards: List[RewardRecord]) -> None:
    if not rewards:
        print("[info] no rewards configured")
        return
    for reward in rewards:
        print(
            f"{reward.id}  {reward.name}  "
            f"{reward.remaining_quantity}/{reward.total_quantity} left  "
            f"winners={', '.join(reward.winners) or '-'}"
        )


def _resolve_reward(cache: RewardCache, wanted: str) -> Optional[RewardRecord]:
    reward = cache.get(wanted)
    if reward is not None:
        return reward
    for candidate in cache.snapshot():
        if candidate.name == wanted:
            return candidate
    return None


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run the slot-machine draw for one reward against the backend."
    )
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--reward", help="Reward id or exact reward name to draw for.")
    parser.add_argument("--list", action="store_true", help="List rewards and exit.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in DrawMode],
        help="Override the draw mode stored in the settings.",
    )
    parser.add_argument("--timeout", type=float, default=10, help="HTTP timeout (s).")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=2.0,
        help="Seconds between background refreshes (default: 2).",
    )
    parser.add_argument("--redis-url", help="Subscribe to store change events.")
    parser.add_argument("--channel", default=DEFAULT_CHANNEL)
    parser.add_argument("--spin", type=float, default=5.0, help="Reel spin duration (s).")
    parser.add_argument("--hold", type=float, default=6.0, help="Congratulation hold (s).")
    parser.add_argument("--pause", type=float, default=2.0, help="Pause without modal (s).")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    client = LuckyDrawClient(args.base_url, timeout=args.timeout)
    cache = RewardCache(client, refresh_interval=args.poll_interval)
    try:
        cache.refresh()
        settings = ValueSource(
            client.settings,
            initial=client.settings(),
            refresh_interval=args.poll_interval,
            name="luckydraw-settings",
        )
        roster = ValueSource(
            client.participants,
            initial=client.participants(),
            refresh_interval=args.poll_interval,
            name="luckydraw-roster",
        )
    except RewardStoreError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 3

    if args.list:
        _print_rewards(cache.snapshot())
        return 0
    if not args.reward:
        parser.error("--reward is required unless --list is given")

    reward = _resolve_reward(cache, args.reward)
    if reward is None:
        print(f"[error] reward not found: {args.reward}", file=sys.stderr)
        return 2

    subscriber = None
    if args.redis_url:
        subscriber = ChangeSubscriber(
            args.redis_url, lambda event: cache.refresh(), channel=args.channel
        )
        subscriber.start()
    cache.start_polling()
    settings.start_polling()
    roster.start_polling()

    engine = DrawEngine(
        cache,
        ReelAnimator(renderer=TerminalReel(), duration=args.spin),
        roster,
        settings=settings,
        presenter=TerminalPresenter(settings().audio_url),
        pacing=Pacing(congratulation_hold=args.hold, silent_pause=args.pause),
    )
    mode = DrawMode(args.mode) if args.mode else None
    print(
        f"[info] drawing {reward.name}: {reward.remaining_quantity} left, "
        f"{len(engine.eligible())} eligible participants"
    )
    try:
        sequence = engine.draw(reward.id, mode)
    finally:
        cache.stop_polling()
        settings.stop_polling()
        roster.stop_polling()
        if subscriber is not None:
            subscriber.stop()

    for step in sequence.steps:
        if step.status is StepStatus.DECLINED:
            print(f"[info] nothing drawn: {step.message}")
    print(f"[info] winners this round: {', '.join(sequence.winners) or '-'}")
    return 1 if sequence.aborted else 0


if __name__ == "__main__":
    sys.exit(main())
