"""Best-effort change notifications over Redis pub/sub.

Store writes publish a small JSON event on a channel so that presentation
runners can refresh their reward cache without waiting for the next poll.
Without ``REDIS_URL`` publishing is skipped and runners fall back to polling.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Callable, Dict, Optional

import redis

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "luckydraw:changes"


def _settings_value(name: str, default=None):
    # Imported lazily so the runner can use the subscriber without Django.
    from django.conf import settings

    return getattr(settings, name, default)


def _redis_client() -> Optional[redis.Redis]:
    redis_url = _settings_value("REDIS_URL")
    if not redis_url:
        return None
    return redis.Redis.from_url(redis_url, decode_responses=True)


def publish_change(action: str, reward_id: Optional[str]) -> None:
    """Announce a store change; failures are logged and never raised."""
    try:
        client = _redis_client()
    except redis.RedisError as exc:
        logger.warning("Failed to create Redis client for change events: %s", exc)
        return
    if client is None:
        return
    channel = _settings_value("LUCKYDRAW_CHANGES_CHANNEL", DEFAULT_CHANNEL)
    message = json.dumps({"action": action, "rewardId": reward_id}, ensure_ascii=True)
    try:
        client.publish(channel, message)
    except redis.RedisError as exc:
        logger.warning("Failed to publish %s change for %s: %s", action, reward_id, exc)


class ChangeSubscriber:
    """Listens on the change channel and calls ``on_change`` for every event."""

    def __init__(
        self,
        redis_url: str,
        on_change: Callable[[Dict[str, Optional[str]]], None],
        *,
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._on_change = on_change
        self._channel = channel
        self._pubsub = None
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(self._channel)
        self._thread = threading.Thread(
            target=self._listen, name="luckydraw-changes", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
        if self._pubsub is not None:
            try:
                self._pubsub.close()
            except redis.RedisError as exc:
                logger.warning("Failed to close change subscription: %s", exc)
            self._pubsub = None

    def handle_message(self, message: Dict) -> None:
        if not message or message.get("type") != "message":
            return
        try:
            event = json.loads(message.get("data") or "{}")
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed change event: %s", exc)
            return
        if not isinstance(event, dict):
            return
        try:
            self._on_change(event)
        except Exception:
            logger.exception("Change handler failed for %s", event)

    def _listen(self) -> None:
        while not self._stopped.is_set():
            try:
                message = self._pubsub.get_message(timeout=1.0)
            except redis.RedisError as exc:
                logger.warning("Change subscription interrupted: %s", exc)
                self._stopped.wait(1.0)
                continue
            if message:
                self.handle_message(message)
