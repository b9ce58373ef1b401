"""
Verity — Room Provisioner (Daily.co REST client)

Creates and destroys the ephemeral two-person video rooms used for
Verity-Dates.  Rooms are named deterministically from the Verity-Date id, so
calling ``create_room`` twice for the same date returns the existing room
instead of creating a duplicate.

Errors are typed:

- ``RoomProviderUnavailable`` — network failure, HTTP 429 or 5xx.  Transient;
  the orchestrator retries these with backoff.
- ``RoomProviderError`` — any other rejection (bad key, malformed request).
  Not worth retrying.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger("verity.room_provisioner")

ROOM_NAME_PREFIX = "verity-"


class RoomProviderError(Exception):
    """The room provider rejected the request."""


class RoomProviderUnavailable(RoomProviderError):
    """The room provider could not be reached or is overloaded."""


@dataclass(frozen=True)
class Room:
    url: str
    name: str


def room_name_for(verity_date_id: str) -> str:
    return f"{ROOM_NAME_PREFIX}{verity_date_id}"


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _already_exists(response: httpx.Response) -> bool:
    if response.status_code == 409:
        return True
    if response.status_code != 400:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    info = str(body.get("info", "")) + str(body.get("error", ""))
    return "already exists" in info.lower()


class DailyRoomProvisioner:
    """Thin async client over the Daily.co ``/rooms`` endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.daily.co/v1",
        session_seconds: int = 600,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._session_seconds = session_seconds
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _room_properties(self) -> dict[str, Any]:
        return {
            "exp": int(time.time()) + self._session_seconds,
            "enable_recording": False,
            "enable_screenshare": False,
            "enable_chat": False,
            "enable_knocking": False,
            "enable_prejoin_ui": True,
            "max_participants": 2,
            "eject_at_room_exp": True,
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise RoomProviderUnavailable(f"Room provider unreachable: {exc}") from exc

        if _is_transient_status(response.status_code):
            raise RoomProviderUnavailable(
                f"Room provider returned HTTP {response.status_code}"
            )
        return response

    async def create_room(self, verity_date_id: str) -> Room:
        """Create (or fetch the already-created) room for a Verity-Date."""
        name = room_name_for(verity_date_id)
        log = logger.bind(verity_date_id=verity_date_id, room_name=name)

        response = await self._request(
            "POST",
            "/rooms",
            json={"name": name, "privacy": "public", "properties": self._room_properties()},
        )

        if _already_exists(response):
            log.info("room_already_exists")
            return await self.get_room(name)

        if response.status_code >= 400:
            log.error("room_create_rejected", status=response.status_code, body=response.text)
            raise RoomProviderError(
                f"Failed to create room: HTTP {response.status_code}"
            )

        data = response.json()
        log.info("room_created")
        return Room(url=data["url"], name=data.get("name", name))

    async def get_room(self, name: str) -> Room:
        response = await self._request("GET", f"/rooms/{name}")
        if response.status_code >= 400:
            raise RoomProviderError(f"Failed to fetch room {name}: HTTP {response.status_code}")
        data = response.json()
        return Room(url=data["url"], name=data.get("name", name))

    async def delete_room(self, name: str) -> bool:
        """Destroy a room; returns False when it no longer existed."""
        response = await self._request("DELETE", f"/rooms/{name}")
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise RoomProviderError(f"Failed to delete room {name}: HTTP {response.status_code}")
        logger.info("room_deleted", room_name=name)
        return True
