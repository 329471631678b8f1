import argparse
import asyncio
import csv
import os
import sys
from typing import List, Optional

import structlog

from config import ENVIRONMENTS, get_settings
from feeds import RecordError, write_accounts
from logging_config import configure_logging
from pipeline import run_pipeline
from repositories import History, Ledger
from services import get_transaction_service

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payment-ledger",
        description="Apply a CSV stream of transactions and print the resulting accounts",
    )
    parser.add_argument("path", help="CSV file with type, client, tx, amount columns")
    parser.add_argument(
        "--env",
        choices=sorted(ENVIRONMENTS),
        default=os.environ.get("LEDGER_ENV"),
        help="Settings preset, defaults to LEDGER_ENV",
    )
    parser.add_argument("--log-level", default=None, help="Override LEDGER_LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "text"], default=None, help="Override LEDGER_LOG_FORMAT")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings(args.env)
    configure_logging(args.log_level or settings.log_level, args.log_format or settings.log_format)

    history = History()
    ledger = Ledger()
    service = get_transaction_service(history, ledger)

    logger.info("Starting payment ledger", app=settings.app_name, env=args.env or "default", path=args.path)
    try:
        asyncio.run(run_pipeline(args.path, service, settings))
    except (OSError, RecordError, csv.Error) as e:
        logger.error("Cannot read transactions", path=args.path, error=str(e))
        return 1

    write_accounts(ledger.accounts(), sys.stdout, settings.amount_precision, settings.sort_output)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
