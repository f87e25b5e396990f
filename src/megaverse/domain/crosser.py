"""Reconciliation driver: goal retrieval, batched submission and verification.

The driver runs two independent retry policies:

- the submit phase retries whole batches on HTTP 429 with a growing backoff,
  bounded by ``ReconcileConfig.max_request_retries``;
- the verify phase re-submits entities the remote map does not show, bounded by
  ``ReconcileConfig.max_verification_retries``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from megaverse.config.megaverse import ReconcileConfig

from .backoff import BackoffClassifier, BackoffPolicy
from .entities import build_create_request, cell_at, diff_goal, verify
from .errors import (
    CrossStateError,
    MalformedGoalError,
    RateLimitedError,
    SubmissionAbortedError,
    VerificationFailedError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .backoff import Sleep
    from .entities import Entity
    from .ports import GoalMatrix, MegaverseAPI

log = getLogger(__name__)


class CrossState(StrEnum):
    UNINITIALIZED = "uninitialized"
    GOAL_LOADED = "goal_loaded"
    DIFFED = "diffed"
    SUBMITTING = "submitting"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class CrossResult:
    """Summary of a finished reconciliation run."""

    entities: tuple[Entity, ...]
    verification_cycles: int = 0
    requests_sent: int = 0
    resubmitted: list[Entity] = field(default_factory=list)


def validate_goal(goal: object) -> GoalMatrix:
    """Return ``goal`` as a list of rows, or raise if it is not a rectangular grid."""

    if not isinstance(goal, list):
        raise MalformedGoalError("Goal must be a list of rows")
    width: int | None = None
    for index, row in enumerate(goal):
        if not isinstance(row, list) or not all(isinstance(token, str) for token in row):
            raise MalformedGoalError(f"Goal row {index} is not a list of strings")
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise MalformedGoalError(
                f"Goal is not rectangular: row {index} has {len(row)} cells, expected {width}"
            )
    return goal


class Crosser:
    """Drive the remote megaverse towards a candidate's goal matrix."""

    def __init__(
        self,
        *,
        candidate_id: str,
        api: MegaverseAPI,
        config: ReconcileConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._candidate_id = candidate_id
        self._api = api
        self._config = config or ReconcileConfig()
        self._classifier = BackoffClassifier(
            policy=BackoffPolicy.from_config(self._config),
            sleep=sleep,
        )
        self._goal: GoalMatrix | None = None
        self._state = CrossState.UNINITIALIZED
        self._requests_sent = 0

    @property
    def state(self) -> CrossState:
        return self._state

    async def init_cross_goal(self) -> None:
        """Fetch and validate the goal matrix for the candidate."""

        if self._state is not CrossState.UNINITIALIZED:
            raise CrossStateError(f"Goal already loaded (state={self._state})")
        goal = await self._api.fetch_goal(self._candidate_id)
        self._goal = validate_goal(goal)
        self._state = CrossState.GOAL_LOADED
        rows = len(self._goal)
        columns = len(self._goal[0]) if rows else 0
        log.info("Loaded %sx%s goal for candidate %s", rows, columns, self._candidate_id)

    def plan(self) -> list[Entity]:
        """Diff the loaded goal into entities without touching the remote state."""

        if self._goal is None:
            raise CrossStateError("Goal not loaded; call init_cross_goal() first")
        return diff_goal(self._goal)

    async def do_cross(self) -> CrossResult:
        """Submit every goal entity and verify the remote map until it matches."""

        if self._state is not CrossState.GOAL_LOADED:
            raise CrossStateError(f"do_cross() requires a loaded goal (state={self._state})")

        try:
            entities = self.plan()
            self._state = CrossState.DIFFED
            log.info("Diffed goal into %s entities", len(entities))

            result = CrossResult(entities=tuple(entities))
            await self._reconcile(entities, result)
        except Exception:
            self._state = CrossState.FAILED
            raise

        result.requests_sent = self._requests_sent
        self._state = CrossState.DONE
        return result

    async def _reconcile(self, entities: list[Entity], result: CrossResult) -> None:
        if not entities:
            log.info("Nothing to place; goal is empty")
            return

        pending = entities
        depth = 0
        while True:
            await self._submit(pending)
            unsaved = await self._verify(pending)
            result.verification_cycles += 1
            if not unsaved:
                log.info("All %s entities verified", len(entities))
                return
            if depth >= self._config.max_verification_retries:
                raise VerificationFailedError(unsaved, cycles=result.verification_cycles)
            depth += 1
            log.warning(
                "%s entities unsaved, resubmitting (verification retry %s/%s)",
                len(unsaved),
                depth,
                self._config.max_verification_retries,
            )
            result.resubmitted.extend(unsaved)
            pending = unsaved

    async def _submit(self, entities: Sequence[Entity]) -> None:
        self._state = CrossState.SUBMITTING
        batch_size = self._config.batch_size
        backoff = self._classifier.policy.initial
        retry_count = 0
        cursor = 0

        while cursor < len(entities):
            batch = entities[cursor : cursor + batch_size]
            error = await self._submit_batch(batch)
            if error is None:
                retry_count = 0
                cursor += batch_size
                continue

            retry_count += 1
            try:
                await self._classifier.handle(error, backoff=backoff, retry_count=retry_count)
            except RateLimitedError as exc:
                raise SubmissionAbortedError(entities[cursor:], retries=retry_count) from exc
            backoff = self._classifier.policy.next(backoff)

        log.info("Submitted %s entities", len(entities))

    async def _submit_batch(self, batch: Sequence[Entity]) -> Exception | None:
        """Issue the batch concurrently and return the error to classify, if any.

        Every member settles before returning. A non rate-limit failure takes
        precedence over a 429 so fatal errors are never retried.
        """

        requests = [build_create_request(entity, self._candidate_id) for entity in batch]
        self._requests_sent += len(requests)
        outcomes = await asyncio.gather(
            *(self._api.create_entity(request) for request in requests),
            return_exceptions=True,
        )
        errors: list[Exception] = []
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
        if not errors:
            return None
        for error in errors:
            if not isinstance(error, RateLimitedError):
                return error
        return errors[0]

    async def _verify(self, entities: Sequence[Entity]) -> list[Entity]:
        self._state = CrossState.VERIFYING
        state = await self._api.fetch_map(self._candidate_id)
        unsaved: list[Entity] = []
        for entity in entities:
            if verify(entity, cell_at(state, entity.row, entity.column)):
                continue
            log.warning(
                "Entity %s at (%s, %s) not saved", entity.kind, entity.row, entity.column
            )
            unsaved.append(entity)
        return unsaved
