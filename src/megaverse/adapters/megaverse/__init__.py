"""Public interface for the megaverse API adapter."""

from __future__ import annotations

from .client import MegaverseAPIError, MegaverseClient
from .schema import CellPayload, GoalResponse, MapResponse

__all__ = [
    "CellPayload",
    "GoalResponse",
    "MapResponse",
    "MegaverseAPIError",
    "MegaverseClient",
]
