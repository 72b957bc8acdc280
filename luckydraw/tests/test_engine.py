import random
from concurrent.futures import Future
from unittest import mock

from django.test import SimpleTestCase

from luckydraw.animator import ReelAnimator
from luckydraw.cache import RewardCache
from luckydraw.engine import DrawEngine, Pacing, StepStatus
from luckydraw.records import DrawMode, DrawSettings, RewardRecord
from luckydraw.store import RewardStoreError

ROSTER = ["Alice", "Bob", "Carol", "Dave", "Erin"]


class MemoryStore:
    def __init__(self, *rewards):
        self.rewards = {reward.id: reward for reward in rewards}
        self.updates = []
        self.fail_updates = False
        self.during_list = None

    def list(self):
        listing = list(self.rewards.values())
        if self.during_list is not None:
            self.during_list()
        return listing

    def create(self, name, image, total_quantity):
        record = RewardRecord(str(len(self.rewards) + 1), name, image, total_quantity, total_quantity)
        self.rewards[record.id] = record
        return record

    def update(self, reward_id, changes):
        self.updates.append((reward_id, dict(changes)))
        if self.fail_updates:
            raise RewardStoreError("store offline")
        record = self.rewards[reward_id].merged(changes)
        self.rewards[reward_id] = record
        return record

    def delete(self, reward_id):
        return self.rewards.pop(reward_id, None) is not None


class StubReel:
    """Settles immediately on the requested target."""

    def __init__(self, before_settle=None, busy=False):
        self.before_settle = before_settle
        self.busy = busy
        self.last_plan = None
        self.pools = []

    def animate(self, on_settle, pool, target=None):
        if self.busy:
            return None
        self.pools.append(list(pool))
        if self.before_settle is not None:
            self.before_settle(target)
        if on_settle is not None:
            on_settle(target)
        future = Future()
        future.set_result(target)
        return future


def reward(reward_id, total, winners=(), name=None):
    return RewardRecord(
        id=reward_id,
        name=name or f"Reward {reward_id}",
        image="/media/rewards/x.png",
        total_quantity=total,
        remaining_quantity=max(0, total - len(winners)),
        winners=tuple(winners),
    )


class DrawEngineTests(SimpleTestCase):
    def build(self, *rewards, roster=ROSTER, animator=None, settings=None, pacing=None):
        self.store = MemoryStore(*rewards)
        self.cache = RewardCache(self.store)
        self.cache.refresh()
        self.presenter = mock.Mock()
        self.sleeps = []
        return DrawEngine(
            self.cache,
            animator or StubReel(),
            lambda: list(roster),
            settings=settings or (lambda: DrawSettings()),
            presenter=self.presenter,
            pacing=pacing,
            rng=random.Random(7),
            sleep=self.sleeps.append,
        )

    def test_one_by_one_draws_single_winner(self):
        engine = self.build(reward("r1", 3))

        sequence = engine.draw("r1")

        self.assertEqual(sequence.mode, DrawMode.ONE_BY_ONE)
        self.assertEqual(len(sequence.winners), 1)
        self.assertIn(sequence.winners[0], ROSTER)
        stored = self.store.rewards["r1"]
        self.assertEqual(stored.remaining_quantity, 2)
        self.assertEqual(stored.winners, tuple(sequence.winners))
        self.assertEqual(self.cache.get("r1"), stored)
        self.presenter.announce.assert_called_once()

    def test_bulk_draw_fills_quota_with_unique_winners(self):
        engine = self.build(reward("r1", 3))

        sequence = engine.draw("r1", DrawMode.ALL_AT_ONCE)

        self.assertEqual(len(sequence.winners), 3)
        self.assertEqual(len(set(sequence.winners)), 3)
        self.assertEqual(self.store.rewards["r1"].remaining_quantity, 0)
        self.assertEqual(self.store.rewards["r1"].winners, tuple(sequence.winners))
        self.assertEqual(self.presenter.cue.call_count, 2)
        self.presenter.announce.assert_called_once()
        self.assertEqual(self.presenter.announce.call_args[0][1], sequence.winners[-1])
        self.assertEqual(self.sleeps, [6.5, 6.5])

    def test_bulk_draw_stops_when_pool_runs_out(self):
        engine = self.build(reward("r1", 3), roster=["Alice", "Bob"])

        sequence = engine.draw_all("r1")

        self.assertEqual(sorted(sequence.winners), ["Alice", "Bob"])
        self.assertEqual(self.store.rewards["r1"].remaining_quantity, 1)
        self.presenter.announce.assert_called_once()

    def test_bulk_draw_without_modal_uses_silent_pause(self):
        engine = self.build(
            reward("r1", 3),
            settings=lambda: DrawSettings(show_congratulation_modal=False),
            pacing=Pacing(silent_pause=1.5),
        )

        sequence = engine.draw_all("r1")

        self.assertEqual(len(sequence.winners), 3)
        self.assertEqual(self.sleeps, [1.5, 1.5])
        self.presenter.announce.assert_not_called()

    def test_configured_mode_is_used_without_override(self):
        engine = self.build(
            reward("r1", 2),
            settings=lambda: DrawSettings(draw_mode=DrawMode.ALL_AT_ONCE),
            pacing=Pacing(0, 0, 0),
        )

        sequence = engine.draw("r1")

        self.assertEqual(sequence.mode, DrawMode.ALL_AT_ONCE)
        self.assertEqual(len(sequence.winners), 2)

    def test_winners_are_unique_across_rewards(self):
        engine = self.build(reward("a", 3), reward("b", 5), pacing=Pacing(0, 0, 0))

        first = engine.draw_all("a")
        second = engine.draw_all("b")

        self.assertEqual(len(first.winners), 3)
        self.assertEqual(len(second.winners), 2)
        self.assertFalse(set(first.winners) & set(second.winners))
        self.assertEqual(sorted(first.winners + second.winners), sorted(ROSTER))
        self.assertEqual(self.store.rewards["b"].remaining_quantity, 3)

    def test_previous_winners_are_excluded_from_pool(self):
        animator = StubReel()
        engine = self.build(reward("a", 2, winners=["Alice", "Bob"]), reward("b", 1), animator=animator)

        engine.draw_one("b")

        self.assertEqual(animator.pools, [["Carol", "Dave", "Erin"]])

    def test_zero_remaining_declines_without_spinning(self):
        animator = StubReel()
        engine = self.build(reward("r1", 1, winners=["Alice"]), animator=animator)

        step = engine.draw_one("r1")

        self.assertEqual(step.status, StepStatus.DECLINED)
        self.assertEqual(animator.pools, [])
        self.assertEqual(self.store.updates, [])

    def test_empty_pool_declines(self):
        engine = self.build(reward("r1", 3), roster=[])

        sequence = engine.draw_all("r1")

        self.assertEqual([step.status for step in sequence.steps], [StepStatus.DECLINED])
        self.assertEqual(sequence.steps[0].message, "No eligible participants left")
        self.assertFalse(sequence.aborted)

    def test_unknown_reward_declines(self):
        engine = self.build()

        step = engine.draw_one("missing")

        self.assertEqual(step.status, StepStatus.DECLINED)

    def test_store_failure_rolls_back_and_aborts(self):
        engine = self.build(reward("r1", 3))
        self.store.fail_updates = True

        sequence = engine.draw_all("r1")

        self.assertTrue(sequence.aborted)
        self.assertEqual([step.status for step in sequence.steps], [StepStatus.FAILED])
        self.assertEqual(self.cache.get("r1").remaining_quantity, 3)
        self.assertEqual(self.cache.get("r1").winners, ())
        self.presenter.error.assert_called_once()

    def test_busy_reel_reports_unavailable(self):
        engine = self.build(reward("r1", 3), animator=StubReel(busy=True))

        step = engine.draw_one("r1")

        self.assertEqual(step.status, StepStatus.ANIMATOR_UNAVAILABLE)
        self.assertEqual(self.store.updates, [])

    def test_last_winner_is_announced_when_final_step_loses_race(self):
        spun = []

        def steal_second(winner):
            spun.append(winner)
            if len(spun) == 2:
                self.store.rewards["b"] = self.store.rewards["b"].merged(
                    {"remainingQuantity": 0, "winners": [winner]}
                )
                self.cache.refresh()

        engine = self.build(
            reward("a", 2),
            reward("b", 1),
            animator=StubReel(before_settle=steal_second),
            pacing=Pacing(0, 0, 0),
        )

        sequence = engine.draw_all("a")

        self.assertEqual(
            [step.status for step in sequence.steps],
            [StepStatus.WON, StepStatus.RACE_LOST],
        )
        self.presenter.cue.assert_called_once()
        self.presenter.announce.assert_called_once()
        self.assertEqual(self.presenter.announce.call_args[0][1], sequence.winners[0])

    def test_refresh_overlapping_a_draw_keeps_the_winner(self):
        engine = self.build(reward("a", 1))
        steps = []

        def draw_during_listing():
            self.store.during_list = None
            steps.append(engine.draw_one("a"))

        self.store.during_list = draw_during_listing

        self.cache.refresh()

        winner = steps[0].winner
        self.assertEqual(steps[0].status, StepStatus.WON)
        self.assertEqual(self.store.rewards["a"].winners, (winner,))
        self.assertEqual(self.cache.get("a").winners, (winner,))
        self.assertNotIn(winner, engine.eligible())

    def test_winner_taken_during_spin_is_not_saved(self):
        def steal(winner):
            self.store.rewards["b"] = self.store.rewards["b"].merged(
                {"remainingQuantity": 0, "winners": [winner]}
            )
            self.cache.refresh()

        engine = self.build(reward("a", 1), reward("b", 1), animator=StubReel(before_settle=steal))

        step = engine.draw_one("a")

        self.assertEqual(step.status, StepStatus.RACE_LOST)
        self.assertEqual(self.store.updates, [])
        self.assertEqual(self.store.rewards["a"].winners, ())
        self.presenter.warn.assert_called_once()

    def test_real_reel_plan_is_attached_to_step(self):
        animator = ReelAnimator(duration=0, hold=0, rng=random.Random(3), realtime=False)
        engine = self.build(reward("r1", 1), animator=animator)

        step = engine.draw_one("r1")

        self.assertEqual(step.status, StepStatus.WON)
        self.assertEqual(step.plan.winner, step.winner)
        self.assertEqual(step.to_payload()["reel"]["targetIndex"], 41)

    def test_edit_reward_recomputes_remaining(self):
        engine = self.build(reward("r1", 5, winners=["Alice", "Bob", "Carol"]))

        updated = engine.edit_reward("r1", total_quantity=2)

        self.assertEqual(updated.total_quantity, 2)
        self.assertEqual(updated.remaining_quantity, 0)
        self.assertEqual(updated.winners, ("Alice", "Bob", "Carol"))
        self.assertEqual(len(self.store.updates), 1)

    def test_edit_unknown_reward_raises(self):
        engine = self.build()

        with self.assertRaises(RewardStoreError):
            engine.edit_reward("missing", name="Mug")
