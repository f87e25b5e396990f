"""HTTP client for the megaverse API."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from megaverse.domain.errors import MegaverseError, RateLimitedError, TransientRequestError

from .schema import GoalResponse, MapResponse

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from megaverse.adapters.http_resilience import ResilientClient
    from megaverse.domain.entities import CreateRequest, RemoteCell
    from megaverse.domain.ports import GoalMatrix

log = getLogger(__name__)

RATE_LIMITED_STATUS = 429


class MegaverseAPIError(MegaverseError):
    """Raised when the megaverse API returns an unexpected response payload."""


class MegaverseClient:
    """Async adapter implementing the driver's ``MegaverseAPI`` port.

    Reads that stay rate limited after the transport retries surface as
    ``TransientRequestError``; only creation requests raise ``RateLimitedError``.
    """

    def __init__(self, client: ResilientClient) -> None:
        self._client = client

    async def fetch_goal(self, candidate_id: str) -> GoalMatrix:
        payload = await self._get_json(f"map/{candidate_id}/goal")
        try:
            return GoalResponse.model_validate(payload).goal
        except ValidationError as exc:
            raise MegaverseAPIError(f"Unexpected goal payload: {exc}") from exc

    async def fetch_map(self, candidate_id: str) -> list[list[RemoteCell | None]]:
        payload = await self._get_json(f"map/{candidate_id}")
        try:
            return MapResponse.model_validate(payload).to_domain()
        except ValidationError as exc:
            raise MegaverseAPIError(f"Unexpected map payload: {exc}") from exc

    async def create_entity(self, request: CreateRequest) -> None:
        path = request.path.lstrip("/")
        await self._send("POST", path, self._client.post(path, json=request.body))

    async def _get_json(self, path: str) -> object:
        response = await self._send("GET", path, self._client.get(path))
        try:
            return response.json()
        except ValueError as exc:
            raise MegaverseAPIError(f"Response from {path} is not JSON") from exc

    async def _send(
        self,
        method: str,
        path: str,
        pending: Awaitable[httpx.Response],
    ) -> httpx.Response:
        try:
            response = await pending
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == RATE_LIMITED_STATUS and method == "POST":
                raise RateLimitedError(
                    f"{method} {path} rate limited", status_code=status
                ) from exc
            log.error("%s %s failed with HTTP %s", method, path, status)
            raise TransientRequestError(
                f"{method} {path} failed with HTTP {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            log.error("%s %s failed: %s", method, path, exc)
            raise TransientRequestError(f"{method} {path} failed: {exc}") from exc
        return response
