"""Error taxonomy for goal parsing, submission and verification."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .entities import Entity


class MegaverseError(RuntimeError):
    """Base class for all megaverse domain errors."""


class InvalidEntityKindError(MegaverseError):
    """Raised when a goal token cannot be turned into an entity."""

    def __init__(self, token: str, *, reason: str | None = None) -> None:
        message = f"Invalid entity token {token!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.token = token


class MalformedGoalError(MegaverseError):
    """Raised when the goal matrix is not a rectangular grid of tokens."""


class RequestError(MegaverseError):
    """Base class for failed creation/retrieval requests."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(RequestError):
    """Raised when the remote API answers with HTTP 429."""


class TransientRequestError(RequestError):
    """Raised for any request failure other than rate limiting."""


class CrossStateError(MegaverseError):
    """Raised when a lifecycle call is made in the wrong state."""


def describe_entities(entities: Sequence[Entity]) -> str:
    return "; ".join(
        f"row={entity.row} column={entity.column} kind={entity.kind} value={entity.value!r}"
        for entity in entities
    )


class SubmissionAbortedError(MegaverseError):
    """Raised when the submit phase exhausts its retry bound.

    ``pending`` holds every entity that was not confirmed as submitted, starting
    with the batch that kept failing.
    """

    def __init__(self, pending: Sequence[Entity], *, retries: int) -> None:
        self.pending = tuple(pending)
        self.retries = retries
        super().__init__(
            f"Submission aborted after {retries} retries; "
            f"{len(self.pending)} entities not submitted: {describe_entities(self.pending)}"
        )


class VerificationFailedError(MegaverseError):
    """Raised when entities remain unsaved after every verification cycle."""

    def __init__(self, unsaved: Sequence[Entity], *, cycles: int) -> None:
        self.unsaved = tuple(unsaved)
        self.cycles = cycles
        super().__init__(
            f"{len(self.unsaved)} entities unsaved after {cycles} verification cycles: "
            f"{describe_entities(self.unsaved)}"
        )
