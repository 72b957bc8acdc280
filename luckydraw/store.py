"""Reward store interface consumed by the cache and the draw engine."""

from __future__ import annotations

from typing import Any, Dict, List, Protocol

from .records import RewardRecord


class RewardStoreError(Exception):
    """Raised when a store read or write is rejected or cannot be completed."""


class RewardStore(Protocol):
    def list(self) -> List[RewardRecord]: ...

    def create(self, name: str, image: str, total_quantity: int) -> RewardRecord: ...

    def update(self, reward_id: str, changes: Dict[str, Any]) -> RewardRecord: ...

    def delete(self, reward_id: str) -> bool: ...
