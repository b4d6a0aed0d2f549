"""
Command-line interface for the environment resync tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import load_telegram_settings
from .models import StoreKind
from .notifications import TelegramNotifier
from .orchestrator import DEFAULT_ORDER, Orchestrator
from .utils import setup_logging

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Wipe the target environment's stores and refill them from the source environment"
    )

    _ = parser.add_argument(
        "--store",
        "-s",
        action="append",
        choices=[kind.value for kind in DEFAULT_ORDER],
        help="Store to resync. Can be specified multiple times (default: all stores).",
    )

    _ = parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=Path("out"),
        help="Directory for the <store>-counts.json reports (default: out)",
    )

    _ = parser.add_argument(
        "--parallel", action="store_true", help="Run stores and relational database pairs concurrently"
    )

    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    stores = [StoreKind(name) for name in args.store] if args.store else list(DEFAULT_ORDER)
    output_dir: Path = args.output_dir
    notifier: TelegramNotifier | None = None

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        notifier = TelegramNotifier.from_settings(load_telegram_settings())

        orchestrator = Orchestrator(output_dir, notifier=notifier, parallel=args.parallel)
        result = orchestrator.run(stores)
    except Exception:
        logger.exception("Resync failed")
        sys.exit(1)
    finally:
        if notifier is not None:
            notifier.close()

    for kind, outcome in result.outcomes.items():
        if outcome.success:
            status = f"ok, {len(outcome.entries)} objects, {len(outcome.mismatches)} mismatches"
        else:
            status = f"FAILED at {outcome.failed_stage}: {outcome.error}"
        print(f"{kind.value}: {status}")
        if outcome.report_path is not None:
            print(f"  report: {outcome.report_path}")

    sys.exit(0 if result.success else 1)
