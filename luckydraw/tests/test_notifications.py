import json
from unittest import mock

import redis
from django.test import SimpleTestCase, override_settings

from luckydraw.notifications import ChangeSubscriber, publish_change


class PublishChangeTests(SimpleTestCase):
    @override_settings(REDIS_URL=None)
    def test_skipped_without_redis(self):
        with mock.patch("luckydraw.notifications.redis.Redis.from_url") as from_url:
            publish_change("updated", "1")

        from_url.assert_not_called()

    @override_settings(REDIS_URL="redis://localhost:6379/0", LUCKYDRAW_CHANGES_CHANNEL="draw:test")
    def test_publishes_json_event(self):
        with mock.patch("luckydraw.notifications.redis.Redis.from_url") as from_url:
            publish_change("updated", "1")

        channel, message = from_url.return_value.publish.call_args[0]
        self.assertEqual(channel, "draw:test")
        self.assertEqual(json.loads(message), {"action": "updated", "rewardId": "1"})

    @override_settings(REDIS_URL="redis://localhost:6379/0")
    def test_publish_failure_is_logged(self):
        with mock.patch("luckydraw.notifications.redis.Redis.from_url") as from_url:
            from_url.return_value.publish.side_effect = redis.ConnectionError("down")
            with self.assertLogs("luckydraw.notifications", level="WARNING"):
                publish_change("deleted", "1")


class ChangeSubscriberTests(SimpleTestCase):
    def setUp(self):
        patcher = mock.patch("luckydraw.notifications.redis.Redis.from_url")
        self.from_url = patcher.start()
        self.addCleanup(patcher.stop)
        self.on_change = mock.Mock()
        self.subscriber = ChangeSubscriber("redis://localhost:6379/0", self.on_change)

    def test_message_triggers_callback(self):
        self.subscriber.handle_message(
            {"type": "message", "data": json.dumps({"action": "updated", "rewardId": "7"})}
        )

        self.on_change.assert_called_once_with({"action": "updated", "rewardId": "7"})

    def test_non_messages_and_bad_payloads_are_ignored(self):
        self.subscriber.handle_message({"type": "subscribe", "data": 1})
        self.subscriber.handle_message(None)
        with self.assertLogs("luckydraw.notifications", level="WARNING"):
            self.subscriber.handle_message({"type": "message", "data": "{oops"})

        self.on_change.assert_not_called()

    def test_start_subscribes_and_stop_closes(self):
        pubsub = self.from_url.return_value.pubsub.return_value
        pubsub.get_message.return_value = None

        self.subscriber.start()
        self.subscriber.stop()

        pubsub.subscribe.assert_called_once_with("luckydraw:changes")
        pubsub.close.assert_called_once()
