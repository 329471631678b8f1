import csv
import sys
from typing import Callable, Iterable, Iterator, List, Optional, TextIO

import structlog
from pydantic import ValidationError

from models import Account, Transaction

logger = structlog.get_logger()

FIELDNAMES = ["type", "client", "tx", "amount"]
OUTPUT_FIELDNAMES = ["client", "available", "held", "total", "locked"]


class RecordError(ValueError):
    """A CSV row that cannot be decoded into a Transaction."""

    def __init__(self, line: int, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"line {line}: {reason}")


def discover_field_order(header: List[str]) -> List[str]:
    fields = [name.strip().lower() for name in header]
    missing = [name for name in FIELDNAMES[:3] if name not in fields]
    if missing:
        raise RecordError(1, f"header is missing columns: {', '.join(missing)}")
    return fields


def decode_record(fields: List[str], row: List[str], line: int = 0) -> Transaction:
    if len(row) > len(fields):
        raise RecordError(line, f"expected at most {len(fields)} fields, got {len(row)}")
    values = {name: value.strip() for name, value in zip(fields, row)}
    try:
        return Transaction.model_validate(values)
    except ValidationError as e:
        reason = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}" for err in e.errors()
        )
        raise RecordError(line, reason) from e


def read_transactions(
    source: TextIO,
    delimiter: str = ",",
    on_reject: Optional[Callable[[RecordError], None]] = None,
) -> Iterator[Transaction]:
    """Decode transactions from a CSV stream, in order.

    Rows that fail to decode are logged and skipped; ``on_reject`` is called
    for each of them.
    """
    reader = csv.reader(source, delimiter=delimiter)
    header = next(reader, None)
    if header is None:
        return
    fields = discover_field_order(header)

    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        try:
            yield decode_record(fields, row, reader.line_num)
        except RecordError as e:
            logger.error("Failed to decode record", line=e.line, reason=e.reason, record=row)
            if on_reject is not None:
                on_reject(e)


def write_accounts(
    accounts: Iterable[Account],
    out: TextIO = None,
    precision: int = 4,
    sort: bool = True,
) -> None:
    out = out or sys.stdout
    if sort:
        accounts = sorted(accounts, key=lambda account: account.client)
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(OUTPUT_FIELDNAMES)
    for account in accounts:
        writer.writerow(account.report(precision).as_row())
