"""
Bank statement parsing (``capital_kernel.domain.bank_statement``).

Reads a semicolon-delimited bank export with columns
``date;amount;counterparty;referenceText`` into typed rows.  The first line
is a header and is ignored.  Rows that cannot be parsed are reported as
``BankRowParseError`` values next to the good rows instead of aborting the
whole statement.

Pure: takes text, returns values.  The import service does the I/O.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from capital_kernel.domain import ogm
from capital_kernel.exceptions import BankRowParseError, EmptyStatementError

DEFAULT_DELIMITER = ";"
DEFAULT_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")
MIN_FIELDS = 4


@dataclass(frozen=True)
class BankStatementRow:
    line_number: int
    transaction_date: date
    amount: Decimal
    counterparty: str | None
    reference_text: str | None
    ogm_code: str | None


@dataclass(frozen=True)
class ParsedStatement:
    """Result of parsing one bank export."""

    row_count: int
    rows: tuple[BankStatementRow, ...]
    skipped: tuple[BankRowParseError, ...] = field(default_factory=tuple)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def parse_amount(raw: str) -> Decimal:
    """
    Parse a bank amount.

    Comma is the decimal separator; when a comma is present, dots are
    thousands separators (``1.234,56``).  Without a comma the value is read
    as a plain decimal (``250.00``).
    """
    text = raw.strip().replace(" ", "")
    if not text:
        raise ValueError("empty amount")
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def parse_date(raw: str, date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS) -> date:
    text = raw.strip()
    for fmt in date_formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognized date: {raw!r}")


def parse_row(
    fields: list[str],
    line_number: int,
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS,
) -> BankStatementRow:
    """
    Parse one split CSV row.

    Raises:
        BankRowParseError: If the row has too few fields or a bad date/amount.
    """
    if len(fields) < MIN_FIELDS:
        raise BankRowParseError(
            line_number, f"expected {MIN_FIELDS} fields, got {len(fields)}"
        )
    raw_date, raw_amount, counterparty, reference_text = (f.strip() for f in fields[:4])

    try:
        transaction_date = parse_date(raw_date, date_formats)
    except ValueError as exc:
        raise BankRowParseError(line_number, str(exc)) from exc
    try:
        amount = parse_amount(raw_amount)
    except ValueError as exc:
        raise BankRowParseError(line_number, str(exc)) from exc

    return BankStatementRow(
        line_number=line_number,
        transaction_date=transaction_date,
        amount=amount,
        counterparty=counterparty or None,
        reference_text=reference_text or None,
        ogm_code=ogm.extract(reference_text),
    )


def parse_bank_csv(
    content: str,
    *,
    file_name: str = "<memory>",
    delimiter: str = DEFAULT_DELIMITER,
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS,
) -> ParsedStatement:
    """
    Parse a whole bank export.

    ``row_count`` counts every non-blank data line after the header; it
    always equals ``len(rows) + skipped_count``.

    Raises:
        EmptyStatementError: If the export has no data lines.
    """
    if content.startswith("\ufeff"):
        content = content[1:]
    lines = [
        (number, line)
        for number, line in enumerate(content.splitlines(), start=1)
        if line.strip()
    ]
    if len(lines) < 2:
        raise EmptyStatementError(file_name)

    rows: list[BankStatementRow] = []
    skipped: list[BankRowParseError] = []
    data_lines = lines[1:]
    for number, line in data_lines:
        fields = next(csv.reader([line], delimiter=delimiter))
        try:
            rows.append(parse_row(fields, number, date_formats))
        except BankRowParseError as exc:
            skipped.append(exc)

    return ParsedStatement(
        row_count=len(data_lines),
        rows=tuple(rows),
        skipped=tuple(skipped),
    )
