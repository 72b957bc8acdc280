from unittest import mock

from django.test import TestCase

from luckydraw import services
from luckydraw.models import EventSettings, Participant, Reward
from luckydraw.records import DrawMode


class RewardServiceTests(TestCase):
    def setUp(self):
        self.reward = services.create_reward("Desk Mat", "/media/rewards/mat.png", 5)

    def test_create_reward_starts_with_full_quota(self):
        self.assertEqual(self.reward.remaining_quantity, 5)
        self.assertEqual(self.reward.winners, [])
        self.assertTrue(self.reward.id.isdigit())

    def test_create_reward_accepts_numeric_strings(self):
        reward = services.create_reward("Mug", "/media/rewards/mug.png", "3")

        self.assertEqual(reward.total_quantity, 3)

    def test_create_reward_requires_all_fields(self):
        with self.assertRaisesMessage(services.RewardValidationError, "Missing required fields"):
            services.create_reward("Mug", "", 3)

    def test_create_reward_rejects_non_positive_quantity(self):
        with self.assertRaises(services.RewardValidationError):
            services.create_reward("Mug", "/media/rewards/mug.png", -2)

    def test_update_merges_only_given_fields(self):
        updated = services.update_reward(self.reward.id, {"name": "Large Desk Mat", "unknown": 1})

        self.assertEqual(updated.name, "Large Desk Mat")
        self.assertEqual(updated.image, "/media/rewards/mat.png")
        self.assertEqual(updated.total_quantity, 5)

    def test_update_records_winner(self):
        services.update_reward(
            self.reward.id, {"remainingQuantity": 4, "winners": ["Alice"]}
        )

        self.reward.refresh_from_db()
        self.assertEqual(self.reward.remaining_quantity, 4)
        self.assertEqual(self.reward.winners, ["Alice"])

    def test_update_rejects_inconsistent_remaining(self):
        with self.assertRaises(services.RewardConsistencyError):
            services.update_reward(self.reward.id, {"winners": ["Alice"]})

        self.reward.refresh_from_db()
        self.assertEqual(self.reward.winners, [])

    def test_update_rejects_winner_of_another_reward(self):
        other = services.create_reward("Mug", "/media/rewards/mug.png", 2)
        services.update_reward(other.id, {"remainingQuantity": 1, "winners": ["Alice"]})

        with self.assertRaisesMessage(services.RewardConsistencyError, "Alice"):
            services.update_reward(
                self.reward.id, {"remainingQuantity": 4, "winners": ["Alice"]}
            )

    def test_update_rejects_duplicate_winner(self):
        with self.assertRaises(services.RewardConsistencyError):
            services.update_reward(
                self.reward.id, {"remainingQuantity": 3, "winners": ["Bob", "Bob"]}
            )

    def test_shrinking_total_below_winners_clamps_to_zero(self):
        services.update_reward(
            self.reward.id,
            {"remainingQuantity": 2, "winners": ["Alice", "Bob", "Carol"]},
        )

        updated = services.update_reward(
            self.reward.id, {"totalQuantity": 2, "remainingQuantity": 0}
        )

        self.assertEqual(updated.remaining_quantity, 0)
        self.assertEqual(updated.winners, ["Alice", "Bob", "Carol"])

    def test_update_unknown_reward(self):
        with self.assertRaises(services.RewardNotFound):
            services.update_reward("404", {"name": "Ghost"})

    def test_delete_reward(self):
        services.delete_reward(self.reward.id)

        self.assertFalse(Reward.objects.filter(pk=self.reward.id).exists())
        with self.assertRaises(services.RewardNotFound):
            services.delete_reward(self.reward.id)

    def test_changes_are_published_after_commit(self):
        with mock.patch("luckydraw.services.publish_change") as publish:
            with self.captureOnCommitCallbacks(execute=True):
                services.update_reward(self.reward.id, {"name": "Mat"})

        publish.assert_called_once_with("updated", self.reward.id)

    def test_store_adapter_wraps_errors(self):
        store = services.DjangoRewardStore()

        with self.assertRaises(services.RewardStoreError):
            store.update(self.reward.id, {"winners": ["Alice"]})
        self.assertFalse(store.delete("404"))
        self.assertEqual([record.id for record in store.list()], [self.reward.id])


class SettingsAndRosterTests(TestCase):
    def test_default_settings(self):
        payload = services.get_settings_payload()

        self.assertEqual(
            payload,
            {
                "backgroundImage": "",
                "audioUrl": "",
                "drawMode": "one-by-one",
                "showCongratulationModal": True,
            },
        )

    def test_update_settings_merges_known_keys(self):
        services.update_settings({"drawMode": "all-at-once", "audioUrl": "/media/a.mp3"})
        services.update_settings({"showCongratulationModal": False})

        settings = services.get_draw_settings()
        self.assertEqual(settings.draw_mode, DrawMode.ALL_AT_ONCE)
        self.assertEqual(settings.audio_url, "/media/a.mp3")
        self.assertFalse(settings.show_congratulation_modal)
        self.assertEqual(EventSettings.objects.count(), 1)

    def test_update_settings_rejects_unknown_mode(self):
        with self.assertRaises(services.SettingsValidationError):
            services.update_settings({"drawMode": "sideways"})

    def test_replace_participants_keeps_order(self):
        services.replace_participants(["Zoe", "Adam", "Zoe"])
        services.replace_participants(["Carol", "Bob"])

        self.assertEqual(services.list_participants(), ["Carol", "Bob"])
        self.assertEqual(Participant.objects.count(), 2)
