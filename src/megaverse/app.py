"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from megaverse.adapters.http_resilience import ResilientClient
from megaverse.adapters.megaverse import MegaverseClient
from megaverse.config import get_megaverse_config
from megaverse.domain.crosser import Crosser, CrossResult

if TYPE_CHECKING:
    from megaverse.config import MegaverseConfig, ResilienceConfig
    from megaverse.domain.backoff import Sleep
    from megaverse.domain.entities import Entity

ClientFactory = Callable[["ResilienceConfig"], ResilientClient]

log = getLogger(__name__)


def cross_megaverse(
    *,
    config: MegaverseConfig | None = None,
    client_factory: ClientFactory | None = None,
    sleep: Sleep = asyncio.sleep,
) -> CrossResult:
    """Load the candidate's goal and reconcile the remote megaverse against it."""

    effective_config = config or get_megaverse_config()
    return asyncio.run(
        _cross_megaverse_async(
            config=effective_config,
            client_factory=client_factory or ResilientClient,
            sleep=sleep,
        )
    )


def plan_megaverse(
    *,
    config: MegaverseConfig | None = None,
    client_factory: ClientFactory | None = None,
) -> list[Entity]:
    """Fetch the goal and return the entities a cross run would submit."""

    effective_config = config or get_megaverse_config()
    return asyncio.run(
        _plan_megaverse_async(
            config=effective_config,
            client_factory=client_factory or ResilientClient,
        )
    )


async def _cross_megaverse_async(
    *,
    config: MegaverseConfig,
    client_factory: ClientFactory,
    sleep: Sleep,
) -> CrossResult:
    log.info(
        "Starting megaverse cross: candidate=%s, batch_size=%s, max_verification_retries=%s",
        config.candidate_id,
        config.reconcile.batch_size,
        config.reconcile.max_verification_retries,
    )
    started = time.perf_counter()
    async with client_factory(config.resilience) as http_client:
        crosser = Crosser(
            candidate_id=config.candidate_id,
            api=MegaverseClient(http_client),
            config=config.reconcile,
            sleep=sleep,
        )
        await crosser.init_cross_goal()
        result = await crosser.do_cross()

    log.info(
        f"Finished megaverse cross: entities={len(result.entities)}, "
        f"requests={result.requests_sent}, cycles={result.verification_cycles}, "
        f"elapsed={time.perf_counter() - started:.2f}s"
    )
    return result


async def _plan_megaverse_async(
    *,
    config: MegaverseConfig,
    client_factory: ClientFactory,
) -> list[Entity]:
    async with client_factory(config.resilience) as http_client:
        crosser = Crosser(
            candidate_id=config.candidate_id,
            api=MegaverseClient(http_client),
            config=config.reconcile,
        )
        await crosser.init_cross_goal()
        return crosser.plan()
