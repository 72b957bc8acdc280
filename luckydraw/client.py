"""HTTP access to a running lucky draw backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests
from requests import RequestException

from .records import DrawSettings, RewardRecord
from .store import RewardStoreError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds per request


class BackendResponseError(RewardStoreError):
    """Raised when the backend answers with an unexpected status code."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class LuckyDrawClient:
    """Talks to the ``/luckydraw/`` JSON API.

    Implements the reward store interface, so it can back a
    :class:`~luckydraw.cache.RewardCache` directly.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        expected_status: Iterable[int] = (200,),
        json_payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/luckydraw{path}"
        try:
            response = self._session.request(
                method=method,
                url=url,
                json=json_payload,
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.exception("HTTP error when reaching %s %s: %s", method, path, exc)
            raise RewardStoreError(f"Failed to reach the draw backend ({exc}).") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise RewardStoreError(f"Response from {path} was not valid JSON.") from exc
        if response.status_code not in set(expected_status):
            message = data.get("error") if isinstance(data, dict) else None
            raise BackendResponseError(
                message or f"{method} {path} returned {response.status_code}",
                response.status_code,
            )
        return data

    # Reward store ---------------------------------------------------------

    def list(self) -> List[RewardRecord]:
        data = self._request("GET", "/rewards/")
        return [RewardRecord.from_payload(item) for item in data.get("rewards") or []]

    def create(self, name: str, image: str, total_quantity: int) -> RewardRecord:
        data = self._request(
            "POST",
            "/rewards/",
            json_payload={"name": name, "image": image, "totalQuantity": total_quantity},
        )
        return RewardRecord.from_payload(data["reward"])

    def update(self, reward_id: str, changes: Dict[str, Any]) -> RewardRecord:
        data = self._request("PUT", f"/rewards/{reward_id}/", json_payload=changes)
        return RewardRecord.from_payload(data["reward"])

    def delete(self, reward_id: str) -> bool:
        try:
            self._request("DELETE", f"/rewards/{reward_id}/")
        except BackendResponseError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    # Settings and roster --------------------------------------------------

    def settings(self) -> DrawSettings:
        return DrawSettings.from_payload(self._request("GET", "/settings/"))

    def participants(self) -> List[str]:
        data = self._request("GET", "/participants/")
        return [str(name) for name in data.get("participants") or []]
