#!/usr/bin/env python3
"""
Create, calculate, pay and export dividend periods.

Rates on the command line are percentages (``--rate 2.5`` means 2.5%).

Usage:
    python3 scripts/calculate_dividends.py --coop <slug> --year <year> [options]

Examples:
    # Declare 2024 at 3% with ex-dividend date 2024-12-31 and calculate it
    python3 scripts/calculate_dividends.py --coop zonnecoop --year 2024 \\
        --rate 3 --ex-date 2024-12-31

    # Recalculate an existing period and write the payout list
    python3 scripts/calculate_dividends.py --coop zonnecoop --year 2024 \\
        --export payouts-2024.csv

    # Mark it paid once the bank has executed the transfers
    python3 scripts/calculate_dividends.py --coop zonnecoop --year 2024 \\
        --no-calculate --mark-paid BATCH-2024-06
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _percentage(value: str) -> Decimal:
    try:
        return Decimal(value) / Decimal(100)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Dividend period runs: create, calculate, mark paid, export.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--coop", required=True, help="Coop slug.")
    parser.add_argument("--year", required=True, type=int, help="Dividend year.")
    parser.add_argument("--name", default=None, help="Period name (new periods only).")
    parser.add_argument(
        "--rate",
        type=_percentage,
        default=None,
        help="Dividend rate in percent (required to create a period).",
    )
    parser.add_argument(
        "--withholding",
        type=_percentage,
        default=None,
        help="Withholding tax in percent (default: configuration).",
    )
    parser.add_argument(
        "--ex-date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Ex-dividend date YYYY-MM-DD (required to create a period).",
    )
    parser.add_argument(
        "--payment-date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Planned payment date YYYY-MM-DD.",
    )
    parser.add_argument(
        "--no-calculate",
        action="store_true",
        help="Skip the calculation run.",
    )
    parser.add_argument(
        "--mark-paid",
        metavar="REFERENCE",
        default=None,
        help="Mark the period paid with this payment reference.",
    )
    parser.add_argument("--export", type=Path, default=None, help="Write the payout CSV here.")
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
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    actor_id = UUID(args.actor_id) if args.actor_id else UUID(
        os.environ.get("CAPITAL_ACTOR_ID", str(uuid4()))
    )

    # Lazy imports so we fail fast on args first
    from sqlalchemy import select

    from capital_config import get_active_config
    from capital_kernel.db.engine import (
        get_session_factory,
        init_engine_from_config,
        init_engine_from_url,
    )
    from capital_kernel.logging_config import configure_logging
    from capital_kernel.models.coop import Coop
    from capital_kernel.models.dividend import DividendPeriod
    from capital_kernel.selectors.dividend_selector import DividendSelector
    from capital_kernel.services.dividend_service import DividendService
    from capital_kernel.services.unit_of_work import UnitOfWork

    config = get_active_config()
    configure_logging(level=config.logging.level)
    if args.db_url:
        init_engine_from_url(args.db_url)
    else:
        init_engine_from_config(config)

    factory = get_session_factory()
    uow = UnitOfWork(factory)
    with factory() as session:
        coop = session.execute(select(Coop).where(Coop.slug == args.coop)).scalar_one_or_none()
        if coop is None:
            print(f"ERROR: Coop {args.coop!r} not found.", file=sys.stderr)
            return 1
        period_id = session.execute(
            select(DividendPeriod.id)
            .where(DividendPeriod.coop_id == coop.id)
            .where(DividendPeriod.year == args.year)
        ).scalar_one_or_none()

    if period_id is None:
        if args.rate is None or args.ex_date is None:
            print(
                f"ERROR: No period for {args.year}; --rate and --ex-date are required to create one.",
                file=sys.stderr,
            )
            return 1
        outcome = uow.run(
            lambda session, clock: DividendService(session, clock).create_period(
                coop.id,
                args.year,
                args.rate,
                args.ex_date,
                actor_id,
                name=args.name,
                withholding_tax_rate=args.withholding,
                payment_date=args.payment_date,
            ),
            operation="create_dividend_period",
            actor_id=actor_id,
            coop_id=coop.id,
        )
        if not outcome.is_success:
            print(f"ERROR: {outcome.message}", file=sys.stderr)
            return 1
        period_id = outcome.value.id
        print(f"Created period {args.year} ({period_id}).")

    steps = []
    if not args.no_calculate:
        steps.append((
            "calculate_dividends",
            lambda session, clock: DividendService(session, clock).calculate(
                period_id, actor_id, coop.id
            ),
        ))
    if args.mark_paid:
        steps.append((
            "mark_dividends_paid",
            lambda session, clock: DividendService(session, clock).mark_as_paid(
                period_id, actor_id, args.mark_paid, coop.id
            ),
        ))
    for operation, fn in steps:
        outcome = uow.run(fn, operation=operation, actor_id=actor_id, coop_id=coop.id)
        if not outcome.is_success:
            print(f"ERROR: {outcome.message}", file=sys.stderr)
            return 1

    with factory() as session:
        summary = DividendSelector(session).period_summary(period_id)
        print(f"Period {summary.year}: {summary.status}")
        print(f"  Payouts: {summary.payout_count}")
        print(f"  Gross:   {summary.total_gross:.2f}")
        print(f"  Tax:     {summary.total_tax:.2f}")
        print(f"  Net:     {summary.total_net:.2f}")

    if args.export:
        outcome = uow.run(
            lambda session, clock: DividendService(session, clock).export_csv(
                period_id, coop.id
            ),
            operation="export_dividends",
            actor_id=actor_id,
            coop_id=coop.id,
        )
        if not outcome.is_success:
            print(f"ERROR: {outcome.message}", file=sys.stderr)
            return 1
        args.export.write_text(outcome.value, encoding="utf-8")
        print(f"Wrote {args.export}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
