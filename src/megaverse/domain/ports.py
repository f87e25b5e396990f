"""Ports the reconciliation driver needs from the remote service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .entities import CreateRequest, RemoteMapState

type GoalMatrix = list[list[str]]


class MegaverseAPI(Protocol):
    """Async access to goal retrieval, entity creation and map state."""

    async def fetch_goal(self, candidate_id: str) -> GoalMatrix: ...

    async def fetch_map(self, candidate_id: str) -> RemoteMapState: ...

    async def create_entity(self, request: CreateRequest) -> None: ...


__all__ = ["GoalMatrix", "MegaverseAPI"]
