"""
Command-line entry point running the scripted migration scenario.

Exit codes:
    0: every expectation held
    1: at least one expectation was violated
    2: the scenario could not run (bad arguments or an unexpected error)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import IO

from docmigrate import __version__
from docmigrate.observability import create_tracer
from docmigrate.scenario import ScenarioConfig, ScenarioReport, run_scenario
from docmigrate.serialization import json_dumps
from docmigrate.stores import InMemoryDocumentStore
from docmigrate.stores.interface import ConflictPolicy

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_EXPECTATION_VIOLATED = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="docmigrate",
        description=(
            "Run the two-phase live migration scenario: seed a source collection, "
            "migrate it while it takes writes, and check what the destination sees."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--documents",
        type=int,
        default=100000,
        help="Number of documents to seed (default: 100000)",
    )
    parser.add_argument(
        "--settle-delay-ms",
        type=int,
        default=3000,
        help="Delay before the workload runs in --fixed-delay mode (default: 3000)",
    )
    throttle = parser.add_mutually_exclusive_group()
    throttle.add_argument(
        "--throughput",
        type=float,
        default=5000.0,
        help="Bulk-copy cap in documents per second (default: 5000)",
    )
    throttle.add_argument(
        "--no-throttle",
        action="store_true",
        help="Run bulk copies without a throughput cap",
    )
    parser.add_argument(
        "--conflict-policy",
        choices=[policy.value for policy in ConflictPolicy],
        default=ConflictPolicy.PROCEED_ON_CONFLICT.value,
        help="Conflict policy of the replay phase (default: proceed-on-conflict)",
    )
    parser.add_argument("--source", default="test_1", help="Source collection (default: test_1)")
    parser.add_argument("--dest", default="test_2", help="Destination collection (default: test_2)")
    parser.add_argument("--update-id", default="10000", help="Seeded id to update (default: 10000)")
    parser.add_argument("--delete-id", default="20000", help="Seeded id to delete (default: 20000)")
    parser.add_argument(
        "--create-id",
        default="999999999",
        help="New id to create (default: 999999999)",
    )
    parser.add_argument(
        "--store",
        choices=["memory", "sqlite"],
        default="memory",
        help="Document store backend (default: memory)",
    )
    parser.add_argument(
        "--database",
        default=":memory:",
        help="SQLite database path for --store sqlite (default: :memory:)",
    )
    parser.add_argument(
        "--fixed-delay",
        action="store_true",
        help="Start the workload after the settle delay instead of the snapshot signal",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the final report as JSON after the checkpoint log",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--enable-tracing",
        action="store_true",
        help="Emit OpenTelemetry spans (requires the telemetry extra)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ScenarioConfig:
    """
    Map parsed arguments onto a ScenarioConfig.

    Raises:
        ValueError: If the resulting configuration is invalid
    """
    return ScenarioConfig(
        source_collection=args.source,
        dest_collection=args.dest,
        document_count=args.documents,
        settle_delay_ms=args.settle_delay_ms,
        throughput_limit=None if args.no_throttle else args.throughput,
        conflict_policy=ConflictPolicy(args.conflict_policy),
        update_doc_id=args.update_id,
        delete_doc_id=args.delete_id,
        create_doc_id=args.create_id,
        wait_for_snapshot=not args.fixed_delay,
    )


async def run(args: argparse.Namespace, config: ScenarioConfig, out: IO[str]) -> ScenarioReport:
    """Open the selected store and run the scenario against it."""
    tracer = create_tracer("docmigrate", args.enable_tracing)

    if args.store == "sqlite":
        from docmigrate.stores.sqlite import SQLiteDocumentStore

        async with SQLiteDocumentStore(args.database, tracer=tracer) as store:
            await store.initialize()
            return await run_scenario(store, config, out, tracer=tracer)

    memory_store = InMemoryDocumentStore(tracer=tracer)
    try:
        return await run_scenario(memory_store, config, out, tracer=tracer)
    finally:
        await memory_store.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    if args.store == "sqlite":
        try:
            import aiosqlite  # noqa: F401
        except ImportError:
            parser.error("--store sqlite requires aiosqlite (pip install docmigrate[sqlite])")

    try:
        report = asyncio.run(run(args, config, sys.stdout))
    except Exception:
        logger.exception("Scenario failed at %s", datetime.now(UTC).isoformat())
        print("==== ERROR DURING TESTS! ++++ ", file=sys.stderr)
        return EXIT_ERROR

    if args.json:
        print(json_dumps(report.to_dict(), indent=2))

    if report.passed:
        return EXIT_OK
    logger.error("Violated expectations: %s", ", ".join(report.failed_expectations))
    return EXIT_EXPECTATION_VIOLATED


if __name__ == "__main__":
    sys.exit(main())
