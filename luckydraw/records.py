"""Plain value objects shared by the draw engine, the cache and the stores."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set


class DrawMode(str, Enum):
    ONE_BY_ONE = "one-by-one"
    ALL_AT_ONCE = "all-at-once"


# Wire (camelCase) name -> attribute name.
REWARD_FIELDS = {
    "id": "id",
    "name": "name",
    "image": "image",
    "totalQuantity": "total_quantity",
    "remainingQuantity": "remaining_quantity",
    "winners": "winners",
}


@dataclass(frozen=True)
class RewardRecord:
    """Snapshot of a reward as seen by the client side of the system."""

    id: str
    name: str
    image: str
    total_quantity: int
    remaining_quantity: int
    winners: tuple = ()

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RewardRecord":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name", "")),
            image=str(payload.get("image", "")),
            total_quantity=int(payload.get("totalQuantity", 0)),
            remaining_quantity=int(payload.get("remainingQuantity", 0)),
            winners=tuple(str(name) for name in payload.get("winners") or []),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "totalQuantity": self.total_quantity,
            "remainingQuantity": self.remaining_quantity,
            "winners": list(self.winners),
        }

    def merged(self, changes: Dict[str, Any]) -> "RewardRecord":
        """Return a copy with wire-format ``changes`` applied on top."""
        updates: Dict[str, Any] = {}
        for key, value in changes.items():
            attr = REWARD_FIELDS.get(key)
            if attr is None or attr == "id":
                continue
            if attr == "winners":
                value = tuple(value)
            updates[attr] = value
        return replace(self, **updates)


def global_winners(rewards: Iterable[RewardRecord]) -> Set[str]:
    """Union of the winners of every reward."""
    winners: Set[str] = set()
    for reward in rewards:
        winners.update(reward.winners)
    return winners


def eligible_participants(
    participants: Sequence[str], rewards: Iterable[RewardRecord]
) -> List[str]:
    """Participants who have not won any reward yet, in roster order."""
    taken = global_winners(rewards)
    return [name for name in participants if name not in taken]


def recompute_remaining(total_quantity: int, winner_count: int) -> int:
    return max(0, total_quantity - winner_count)


@dataclass(frozen=True)
class DrawSettings:
    background_image: str = ""
    audio_url: str = ""
    draw_mode: DrawMode = DrawMode.ONE_BY_ONE
    show_congratulation_modal: bool = True

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "DrawSettings":
        payload = payload or {}
        try:
            mode = DrawMode(payload.get("drawMode") or DrawMode.ONE_BY_ONE.value)
        except ValueError:
            mode = DrawMode.ONE_BY_ONE
        show_modal = payload.get("showCongratulationModal")
        return cls(
            background_image=payload.get("backgroundImage") or "",
            audio_url=payload.get("audioUrl") or "",
            draw_mode=mode,
            show_congratulation_modal=True if show_modal is None else bool(show_modal),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "backgroundImage": self.background_image,
            "audioUrl": self.audio_url,
            "drawMode": self.draw_mode.value,
            "showCongratulationModal": self.show_congratulation_modal,
        }
