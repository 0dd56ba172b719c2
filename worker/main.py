"""
Aethra analysis worker - process entry point.

Usage:
    python -m worker.main <REPORT_ID>
    aethra-worker <REPORT_ID>

Processes exactly one report and exits: 0 when the report completed (or
had already been processed), 1 when the run failed or configuration is
incomplete, 2 on a usage error.
"""

import argparse
import asyncio
import logging
from typing import Sequence

from worker.core.config import Settings
from worker.runner import RunOutcome, build_runner

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="aethra-worker",
        description="Run the audit / deepfake analysis for one report",
    )
    parser.add_argument("report_id", help="Identifier of the report to process")
    return parser.parse_args(argv)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = Settings()
    configure_logging(settings)

    missing = settings.missing_required()
    if missing:
        logger.error("Missing required env vars: %s", ", ".join(missing))
        return 1

    logger.info("Starting Aethra worker (env: %s)", settings.environment)
    outcome = asyncio.run(build_runner(settings).run(args.report_id))
    return 1 if outcome is RunOutcome.FAILED else 0


if __name__ == "__main__":
    raise SystemExit(main())
