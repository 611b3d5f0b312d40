import csv
import re
from datetime import datetime
from io import StringIO
from typing import Mapping, Sequence

from models import TransactionKind
from money import format_amount, parse_amount
from schemas import CSVRow, TransactionRow

HEADER = ["Id", "Date", "Kind", "Amount", "Category", "Name"]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str):
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return datetime.strptime(value, "%d.%m.%Y").date()


def parse_kind(value: str) -> TransactionKind:
    clean = value.strip().lower()
    if not clean:
        return TransactionKind.expense
    if clean.isdigit():
        return TransactionKind(int(clean))
    try:
        return TransactionKind[clean]
    except KeyError as exc:
        raise ValueError(f"Unknown kind {value!r}") from exc


def parse_csv(content: str) -> tuple[list[CSVRow], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            amount = parse_amount(raw.get("Amount") or "")
            if amount < 0:
                raise ValueError("Amount must be positive")
            rows.append(
                CSVRow(
                    line=idx,
                    id=(raw.get("Id") or "").strip(),
                    date=parse_date(raw.get("Date") or ""),
                    kind=parse_kind(raw.get("Kind") or ""),
                    amount=amount,
                    category=(raw.get("Category") or "").strip(),
                    name=(raw.get("Name") or "").strip(),
                )
            )
        except ValueError as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def export_transactions(
    transactions: Sequence[TransactionRow], category_names: Mapping[str, str]
) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(HEADER)
    for txn in transactions:
        writer.writerow(
            [
                txn.id,
                txn.date.isoformat(),
                txn.kind.name,
                format_amount(txn.amount),
                sanitize_csv_value(category_names.get(txn.category_id, "")),
                sanitize_csv_value(txn.name),
            ]
        )
    return output.getvalue()
