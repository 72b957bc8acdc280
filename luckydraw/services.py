from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List

from django.conf import settings
from django.db import transaction

from .locks import DrawLockError, reward_store_lock
from .models import EventSettings, Participant, Reward
from .notifications import publish_change
from .records import DrawMode, DrawSettings, RewardRecord, recompute_remaining
from .store import RewardStoreError

logger = logging.getLogger(__name__)

STORE_LOCK_TIMEOUT = getattr(settings, "LUCKYDRAW_STORE_LOCK_TIMEOUT", 5)


class RewardNotFound(Exception):
    """Raised when a reward id does not match any stored reward."""


class RewardValidationError(Exception):
    """Raised when a reward payload is missing fields or carries bad values."""


class RewardConsistencyError(Exception):
    """Raised when a write would break the quantity/winners bookkeeping."""


class SettingsValidationError(Exception):
    """Raised when a settings payload carries an unsupported value."""


def generate_reward_id() -> str:
    for _ in range(10):
        candidate = str(int(time.time() * 1000))
        if not Reward.objects.filter(pk=candidate).exists():
            return candidate
        time.sleep(0.001)
    raise RewardValidationError("Failed to allocate a reward id. Please try again.")


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise RewardValidationError(f"{field} must be a positive number")
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise RewardValidationError(f"{field} must be a positive number")
    if number <= 0:
        raise RewardValidationError(f"{field} must be a positive number")
    return number


def _non_empty_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RewardValidationError(f"{field} must be a non-empty string")
    return value.strip()


def list_rewards() -> List[Reward]:
    return list(Reward.objects.all())


def get_reward(reward_id: str) -> Reward:
    try:
        return Reward.objects.get(pk=reward_id)
    except Reward.DoesNotExist:
        raise RewardNotFound("Reward not found")


def create_reward(name: Any, image: Any, total_quantity: Any) -> Reward:
    """Create a reward with a full quota and no winners."""

    if not name or not image or not total_quantity:
        raise RewardValidationError(
            "Missing required fields: name, image, totalQuantity"
        )
    clean_name = _non_empty_text(name, "name")
    clean_image = _non_empty_text(image, "image")
    quantity = _positive_int(total_quantity, "totalQuantity")

    with reward_store_lock(STORE_LOCK_TIMEOUT), transaction.atomic():
        reward = Reward.objects.create(
            id=generate_reward_id(),
            name=clean_name,
            image=clean_image,
            total_quantity=quantity,
            remaining_quantity=quantity,
            winners=[],
        )
    logger.info("Reward created: %s - %s", reward.id, reward.name)
    transaction.on_commit(lambda: publish_change("created", reward.id))
    return reward


def _apply_changes(reward: Reward, changes: Dict[str, Any]) -> None:
    if "name" in changes:
        reward.name = _non_empty_text(changes["name"], "name")
    if "image" in changes:
        reward.image = _non_empty_text(changes["image"], "image")
    if "totalQuantity" in changes:
        reward.total_quantity = _positive_int(changes["totalQuantity"], "totalQuantity")
    if "remainingQuantity" in changes:
        remaining = changes["remainingQuantity"]
        if isinstance(remaining, bool) or not isinstance(remaining, int) or remaining < 0:
            raise RewardValidationError(
                "remainingQuantity must be a non-negative integer"
            )
        reward.remaining_quantity = remaining
    if "winners" in changes:
        winners = changes["winners"]
        if not isinstance(winners, list) or not all(
            isinstance(name, str) and name for name in winners
        ):
            raise RewardValidationError("winners must be a list of names")
        reward.winners = list(winners)


def _check_consistency(reward: Reward) -> None:
    winners = list(reward.winners or [])
    expected = recompute_remaining(reward.total_quantity, len(winners))
    if reward.remaining_quantity != expected:
        raise RewardConsistencyError(
            f"remainingQuantity must equal {expected} for "
            f"{reward.total_quantity} total and {len(winners)} winners"
        )
    if len(set(winners)) != len(winners):
        raise RewardConsistencyError("A participant cannot win the same reward twice")
    others = Reward.objects.exclude(pk=reward.pk).values_list("winners", flat=True)
    taken = {name for names in others for name in (names or [])}
    clash = [name for name in winners if name in taken]
    if clash:
        raise RewardConsistencyError(
            f"{clash[0]} has already won another reward"
        )


def update_reward(reward_id: str, changes: Dict[str, Any]) -> Reward:
    """Merge ``changes`` (wire-format keys) into a stored reward.

    Unknown keys and ``id`` are ignored. The merged record must keep
    ``remainingQuantity == max(0, totalQuantity - len(winners))`` and must not
    reuse a winner of another reward; otherwise nothing is written.
    """

    if not isinstance(changes, dict):
        raise RewardValidationError("Request body must be a JSON object")

    with reward_store_lock(STORE_LOCK_TIMEOUT), transaction.atomic():
        try:
            reward = Reward.objects.select_for_update().get(pk=reward_id)
        except Reward.DoesNotExist:
            raise RewardNotFound("Reward not found")
        _apply_changes(reward, changes)
        _check_consistency(reward)
        reward.save()

    logger.info(
        "Reward updated: %s remaining=%s winners=%s",
        reward.id,
        reward.remaining_quantity,
        len(reward.winners),
    )
    transaction.on_commit(lambda: publish_change("updated", reward.id))
    return reward


def delete_reward(reward_id: str) -> None:
    with reward_store_lock(STORE_LOCK_TIMEOUT), transaction.atomic():
        deleted, _ = Reward.objects.filter(pk=reward_id).delete()
    if not deleted:
        raise RewardNotFound("Reward not found")
    logger.info("Reward deleted: %s", reward_id)
    transaction.on_commit(lambda: publish_change("deleted", reward_id))


# Settings ---------------------------------------------------------------


def get_draw_settings() -> DrawSettings:
    return EventSettings.load().to_settings()


def get_settings_payload() -> Dict[str, Any]:
    return get_draw_settings().to_payload()


def update_settings(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the known settings keys of ``payload`` and persist them."""

    if not isinstance(payload, dict):
        raise SettingsValidationError("Request body must be a JSON object")

    instance = EventSettings.load()
    if payload.get("backgroundImage") is not None:
        instance.background_image = str(payload["backgroundImage"])
    if payload.get("audioUrl") is not None:
        instance.audio_url = str(payload["audioUrl"])
    if payload.get("drawMode") is not None:
        try:
            instance.draw_mode = DrawMode(payload["drawMode"]).value
        except ValueError:
            raise SettingsValidationError(
                "drawMode must be 'one-by-one' or 'all-at-once'"
            )
    if payload.get("showCongratulationModal") is not None:
        flag = payload["showCongratulationModal"]
        if not isinstance(flag, bool):
            raise SettingsValidationError("showCongratulationModal must be a boolean")
        instance.show_congratulation_modal = flag
    instance.save()
    transaction.on_commit(lambda: publish_change("settings", None))
    return instance.to_settings().to_payload()


# Participants -----------------------------------------------------------


def list_participants() -> List[str]:
    return list(Participant.objects.values_list("name", flat=True))


def replace_participants(names: Iterable[str]) -> List[str]:
    """Replace the stored roster, keeping the given order."""

    roster = list(names)
    with transaction.atomic():
        Participant.objects.all().delete()
        Participant.objects.bulk_create(
            [Participant(position=index, name=name) for index, name in enumerate(roster)]
        )
    logger.info("Participant roster replaced with %s names", len(roster))
    transaction.on_commit(lambda: publish_change("participants", None))
    return roster


class DjangoRewardStore:
    """``RewardStore`` backed by the reward table of this process."""

    def list(self) -> List[RewardRecord]:
        return [reward.to_record() for reward in list_rewards()]

    def create(self, name: str, image: str, total_quantity: int) -> RewardRecord:
        try:
            reward = create_reward(name, image, total_quantity)
        except (RewardValidationError, DrawLockError) as exc:
            raise RewardStoreError(str(exc)) from exc
        return reward.to_record()

    def update(self, reward_id: str, changes: Dict[str, Any]) -> RewardRecord:
        try:
            reward = update_reward(reward_id, changes)
        except (
            RewardNotFound,
            RewardValidationError,
            RewardConsistencyError,
            DrawLockError,
        ) as exc:
            raise RewardStoreError(str(exc)) from exc
        return reward.to_record()

    def delete(self, reward_id: str) -> bool:
        try:
            delete_reward(reward_id)
        except RewardNotFound:
            return False
        return True
