from __future__ import annotations

import asyncio

import pytest

from megaverse.config.megaverse import ReconcileConfig
from megaverse.domain.crosser import Crosser, CrossResult, CrossState
from megaverse.domain.entities import CreateRequest, Entity, EntityKind, RemoteCell
from megaverse.domain.errors import (
    CrossStateError,
    InvalidEntityKindError,
    MalformedGoalError,
    RateLimitedError,
    SubmissionAbortedError,
    TransientRequestError,
    VerificationFailedError,
)
from tests.support.fake_megaverse import FakeMegaverseAPI, SleepRecorder

SCENARIO_GOAL = [["SPACE", "POLYANET"], ["BLUE_SOLOON", "SPACE"]]


def _crosser(
    api: FakeMegaverseAPI,
    *,
    config: ReconcileConfig | None = None,
    sleep: SleepRecorder | None = None,
) -> Crosser:
    return Crosser(
        candidate_id="cand-1",
        api=api,
        config=config or ReconcileConfig(),
        sleep=sleep or SleepRecorder(),
    )


def _run(crosser: Crosser) -> CrossResult:
    async def lifecycle() -> CrossResult:
        await crosser.init_cross_goal()
        return await crosser.do_cross()

    return asyncio.run(lifecycle())


def _rate_limited(times: int) -> list[Exception]:
    return [RateLimitedError("Too Many Requests", status_code=429) for _ in range(times)]


def test_scenario_goal_places_and_verifies_both_entities() -> None:
    api = FakeMegaverseAPI(goal=SCENARIO_GOAL)
    crosser = _crosser(api)

    result = _run(crosser)

    assert crosser.state is CrossState.DONE
    assert result.entities == (
        Entity(row=0, column=1, kind=EntityKind.POLYANET, value=""),
        Entity(row=1, column=0, kind=EntityKind.SOLOON, value="blue"),
    )
    assert api.created == [
        CreateRequest(path="/polyanets", body={"candidateId": "cand-1", "row": 0, "column": 1}),
        CreateRequest(
            path="/soloons",
            body={"candidateId": "cand-1", "row": 1, "column": 0, "color": "blue"},
        ),
    ]
    assert api.map_fetches == 1
    assert result.verification_cycles == 1
    assert result.requests_sent == 2
    assert result.resubmitted == []


def test_empty_goal_submits_nothing() -> None:
    api = FakeMegaverseAPI(goal=[["SPACE", "SPACE"], ["SPACE", "SPACE"]])
    crosser = _crosser(api)

    result = _run(crosser)

    assert crosser.state is CrossState.DONE
    assert result.entities == ()
    assert api.created == []
    assert api.map_fetches == 0


def test_batches_advance_in_cursor_order() -> None:
    goal = [["POLYANET", "POLYANET", "POLYANET"], ["UP_COMETH", "SPACE", "WHITE_SOLOON"]]
    api = FakeMegaverseAPI(goal=goal)

    _run(_crosser(api, config=ReconcileConfig(batch_size=2)))

    assert api.created_at() == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 2)]


def test_rate_limited_batch_backs_off_then_succeeds() -> None:
    api = FakeMegaverseAPI(goal=SCENARIO_GOAL, errors={(1, 0): _rate_limited(3)})
    sleep = SleepRecorder()
    crosser = _crosser(api, sleep=sleep)

    result = _run(crosser)

    assert crosser.state is CrossState.DONE
    assert sleep.delays == pytest.approx([0.2, 0.4, 0.6])
    # the whole batch is resent on every retry
    assert result.requests_sent == 8
    assert api.map_fetches == 1


def test_backoff_is_non_decreasing_and_capped() -> None:
    api = FakeMegaverseAPI(goal=[["POLYANET"]], errors={(0, 0): _rate_limited(5)})
    sleep = SleepRecorder()
    config = ReconcileConfig(
        initial_backoff_seconds=0.2,
        backoff_increment_seconds=0.2,
        max_backoff_seconds=0.5,
    )

    _run(_crosser(api, config=config, sleep=sleep))

    assert sleep.delays == pytest.approx([0.2, 0.4, 0.5, 0.5, 0.5])
    assert sleep.delays == sorted(sleep.delays)


def test_retry_counter_resets_after_successful_batch() -> None:
    goal = [["POLYANET", "POLYANET", "POLYANET", "POLYANET"]]
    api = FakeMegaverseAPI(
        goal=goal,
        errors={(0, 0): _rate_limited(2), (0, 2): _rate_limited(2)},
    )
    config = ReconcileConfig(max_request_retries=3)

    crosser = _crosser(api, config=config)
    _run(crosser)

    assert crosser.state is CrossState.DONE


def test_persistent_rate_limit_aborts_without_advancing() -> None:
    goal = [["POLYANET", "POLYANET"], ["POLYANET", "RED_SOLOON"]]
    api = FakeMegaverseAPI(goal=goal, errors={(1, 0): _rate_limited(50)})
    sleep = SleepRecorder()
    crosser = _crosser(api, config=ReconcileConfig(max_request_retries=3), sleep=sleep)

    with pytest.raises(SubmissionAbortedError) as exc:
        _run(crosser)

    assert crosser.state is CrossState.FAILED
    assert exc.value.retries == 3
    assert exc.value.pending == (
        Entity(row=1, column=0, kind=EntityKind.POLYANET),
        Entity(row=1, column=1, kind=EntityKind.SOLOON, value="red"),
    )
    assert isinstance(exc.value.__cause__, RateLimitedError)
    assert len(sleep.delays) == 2
    assert api.map_fetches == 0
    assert "row=1 column=1 kind=SOLOON value='red'" in str(exc.value)


def test_non_rate_limit_error_is_fatal() -> None:
    error = TransientRequestError("POST polyanets failed with HTTP 400", status_code=400)
    api = FakeMegaverseAPI(goal=SCENARIO_GOAL, errors={(0, 1): [error]})
    sleep = SleepRecorder()
    crosser = _crosser(api, sleep=sleep)

    with pytest.raises(TransientRequestError) as exc:
        _run(crosser)

    assert exc.value is error
    assert crosser.state is CrossState.FAILED
    assert sleep.delays == []


def test_fatal_error_wins_over_rate_limit_in_same_batch() -> None:
    api = FakeMegaverseAPI(
        goal=SCENARIO_GOAL,
        errors={
            (0, 1): _rate_limited(1),
            (1, 0): [TransientRequestError("boom", status_code=500)],
        },
    )
    sleep = SleepRecorder()

    with pytest.raises(TransientRequestError):
        _run(_crosser(api, sleep=sleep))

    assert sleep.delays == []


def test_unsaved_entity_is_resubmitted_alone() -> None:
    api = FakeMegaverseAPI(goal=SCENARIO_GOAL, drops={(1, 0): 1})
    crosser = _crosser(api)

    result = _run(crosser)

    soloon = Entity(row=1, column=0, kind=EntityKind.SOLOON, value="blue")
    assert crosser.state is CrossState.DONE
    assert result.verification_cycles == 2
    assert result.resubmitted == [soloon]
    assert api.created_at() == [(0, 1), (1, 0), (1, 0)]
    assert api.map_fetches == 2


def test_persistent_mismatch_fails_with_every_unsaved_entity() -> None:
    goal = [["POLYANET", "BLUE_SOLOON"], ["DOWN_COMETH", "SPACE"]]
    api = FakeMegaverseAPI(
        goal=goal,
        overrides={
            (0, 1): RemoteCell(type=1, color="red"),
            (1, 0): None,
        },
    )
    crosser = _crosser(api, config=ReconcileConfig(max_verification_retries=2))

    with pytest.raises(VerificationFailedError) as exc:
        _run(crosser)

    assert crosser.state is CrossState.FAILED
    assert exc.value.cycles == 3
    assert exc.value.unsaved == (
        Entity(row=0, column=1, kind=EntityKind.SOLOON, value="blue"),
        Entity(row=1, column=0, kind=EntityKind.COMETH, value="down"),
    )
    assert str(exc.value) == (
        "2 entities unsaved after 3 verification cycles: "
        "row=0 column=1 kind=SOLOON value='blue'; "
        "row=1 column=0 kind=COMETH value='down'"
    )
    assert api.map_fetches == 3
    assert api.created_at() == [(0, 0), (0, 1), (1, 0), (0, 1), (1, 0), (0, 1), (1, 0)]


def test_zero_verification_retries_fails_after_first_cycle() -> None:
    api = FakeMegaverseAPI(goal=[["POLYANET"]], drops={(0, 0): 1})
    crosser = _crosser(api, config=ReconcileConfig(max_verification_retries=0))

    with pytest.raises(VerificationFailedError) as exc:
        _run(crosser)

    assert exc.value.cycles == 1
    assert len(api.created) == 1


def test_do_cross_requires_loaded_goal() -> None:
    crosser = _crosser(FakeMegaverseAPI(goal=SCENARIO_GOAL))

    with pytest.raises(CrossStateError):
        asyncio.run(crosser.do_cross())

    assert crosser.state is CrossState.UNINITIALIZED


def test_init_rejects_non_rectangular_goal() -> None:
    crosser = _crosser(FakeMegaverseAPI(goal=[["SPACE", "POLYANET"], ["SPACE"]]))

    with pytest.raises(MalformedGoalError, match="not rectangular"):
        asyncio.run(crosser.init_cross_goal())

    assert crosser.state is CrossState.UNINITIALIZED


def test_invalid_goal_token_aborts_before_any_request() -> None:
    api = FakeMegaverseAPI(goal=[["POLYANET", "GREEN_PLANET"]])
    crosser = _crosser(api)

    with pytest.raises(InvalidEntityKindError):
        _run(crosser)

    assert api.created == []
    assert crosser.state is CrossState.FAILED


def test_rate_limit_just_below_bound_waits_then_succeeds() -> None:
    config = ReconcileConfig(max_request_retries=4)
    api = FakeMegaverseAPI(goal=[["POLYANET"]], errors={(0, 0): _rate_limited(3)})
    sleep = SleepRecorder()
    crosser = _crosser(api, config=config, sleep=sleep)

    result = _run(crosser)

    assert crosser.state is CrossState.DONE
    assert len(sleep.delays) == 3
    assert result.requests_sent == 4


def test_map_read_failure_in_verify_phase_propagates() -> None:
    error = TransientRequestError("GET map/cand-1 failed with HTTP 503", status_code=503)
    api = FakeMegaverseAPI(goal=SCENARIO_GOAL, map_errors=[error])
    crosser = _crosser(api)

    with pytest.raises(TransientRequestError) as exc:
        _run(crosser)

    assert exc.value is error
    assert crosser.state is CrossState.FAILED
    assert len(api.created) == 2
