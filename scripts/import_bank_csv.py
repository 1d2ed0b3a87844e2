#!/usr/bin/env python3
"""
Import a bank statement export and match its rows to pending payments.

Rows carrying a valid OGM are matched to the PENDING payment with that
code; the purchase is then approved and completed.  Malformed rows are
skipped and counted.

Usage:
    python3 scripts/import_bank_csv.py --coop <slug> --file <path> [options]

Examples:
    # Import against the configured database
    python3 scripts/import_bank_csv.py --coop zonnecoop --file export.csv

    # Import into a local SQLite file, creating tables first
    python3 scripts/import_bank_csv.py --coop zonnecoop --file export.csv \\
        --db-url sqlite:///capital.db --create-tables
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import a bank CSV export and auto-match payments by OGM.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--coop", required=True, help="Coop slug.")
    parser.add_argument("--file", required=True, type=Path, help="Bank CSV export.")
    parser.add_argument(
        "--actor-id",
        default=None,
        help="Actor UUID for audit (default: CAPITAL_ACTOR_ID env or new UUID).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: database.url from configuration).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before importing.",
    )
    parser.add_argument(
        "--show-unmatched",
        action="store_true",
        help="List rows that stayed unmatched.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    source_path = args.file.resolve()
    if not source_path.is_file():
        print(f"ERROR: File not found: {source_path}", file=sys.stderr)
        return 1
    actor_id = UUID(args.actor_id) if args.actor_id else UUID(
        os.environ.get("CAPITAL_ACTOR_ID", str(uuid4()))
    )

    # Lazy imports so we fail fast on args first
    from sqlalchemy import select

    from capital_config import get_active_config
    from capital_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_config,
        init_engine_from_url,
    )
    from capital_kernel.domain.lifecycle import MatchStatus
    from capital_kernel.logging_config import configure_logging
    from capital_kernel.models.coop import Coop
    from capital_kernel.selectors.bank_selector import BankSelector
    from capital_kernel.services.bank_import_service import BankImportService
    from capital_kernel.services.unit_of_work import UnitOfWork

    config = get_active_config()
    configure_logging(level=config.logging.level)
    if args.db_url:
        init_engine_from_url(args.db_url)
    else:
        init_engine_from_config(config)
    if args.create_tables:
        create_tables()

    factory = get_session_factory()
    with factory() as session:
        coop = session.execute(select(Coop).where(Coop.slug == args.coop)).scalar_one_or_none()
    if coop is None:
        print(f"ERROR: Coop {args.coop!r} not found.", file=sys.stderr)
        return 1

    def _import(session, clock):
        service = BankImportService(session, clock)
        return service.import_file(coop.id, source_path, actor_id)

    print(f"Importing {source_path} for {coop.name}...")
    outcome = UnitOfWork(factory).run(
        _import, operation="import_bank_csv", actor_id=actor_id, coop_id=coop.id
    )
    if not outcome.is_success:
        print(f"ERROR: {outcome.message}", file=sys.stderr)
        return 1

    batch = outcome.value
    print(f"  Rows:      {batch.row_count}")
    print(f"  Matched:   {batch.matched_count}")
    print(f"  Unmatched: {batch.unmatched_count}")
    print(f"  Skipped:   {batch.skipped_count}")

    if args.show_unmatched and batch.unmatched_count:
        with factory() as session:
            rows = BankSelector(session).list_bank_transactions(
                coop.id, bank_import_id=batch.id, match_status=MatchStatus.UNMATCHED
            )
        for row in rows:
            print(
                f"  line {row.line_number}: {row.transaction_date} {row.amount:.2f} "
                f"{row.counterparty or ''} | {row.reference_text or ''}"
            )
    return 0


if __name__ == "__main__":
    sys.exit(main())
