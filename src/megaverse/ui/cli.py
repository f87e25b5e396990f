from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from megaverse.app import cross_megaverse, plan_megaverse
from megaverse.config import (
    ConfigurationError,
    ReconcileConfig,
    configure_logging,
    get_megaverse_config,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from megaverse.config import MegaverseConfig

log = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--candidate-id",
        type=str,
        help="Candidate id (defaults to the CANDIDATE_ID environment variable)",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile the megaverse with its goal map")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    cross = subparsers.add_parser("cross", help="Place every goal entity and verify the map")
    _add_common_arguments(cross)
    cross.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Number of creation requests in flight at once (defaults to config)",
    )
    cross.add_argument(
        "--max-verification-retries",
        type=int,
        default=None,
        help="Resubmission cycles for entities missing from the map (defaults to config)",
    )

    goal = subparsers.add_parser("goal", help="Show the entities the goal map requires")
    _add_common_arguments(goal)

    return parser.parse_args(list(argv))


def _build_config(args: argparse.Namespace) -> MegaverseConfig:
    defaults = ReconcileConfig()
    batch_size = getattr(args, "batch_size", None)
    max_verification_retries = getattr(args, "max_verification_retries", None)
    reconcile = ReconcileConfig(
        batch_size=defaults.batch_size if batch_size is None else batch_size,
        max_verification_retries=(
            defaults.max_verification_retries
            if max_verification_retries is None
            else max_verification_retries
        ),
    )
    return get_megaverse_config(candidate_id=args.candidate_id, reconcile=reconcile)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        if parsed_args.verbose:
            configure_logging(level=logging.DEBUG, force=True)
        config = _build_config(parsed_args)
    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(2)

    try:
        if parsed_args.command == "cross":
            cross_megaverse(config=config)
            log.info("Done!")
        elif parsed_args.command == "goal":
            entities = plan_megaverse(config=config)
            counts = Counter(entity.kind for entity in entities)
            for entity in entities:
                log.info("(%s, %s) %s %s", entity.row, entity.column, entity.kind, entity.value)
            log.info(
                "Goal requires %s entities: %s",
                len(entities),
                ", ".join(f"{kind}={count}" for kind, count in sorted(counts.items())),
            )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during megaverse run")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
