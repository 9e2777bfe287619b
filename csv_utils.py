import csv
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import Any, Sequence

from models import TransactionType


EXPORT_HEADER = ["Date", "Title", "Category", "Type", "Amount"]
TYPE_LABELS = {TransactionType.income: "Income", TransactionType.expense: "Expense"}


FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")
RISKY_VALUE = re.compile(r"^(cmd|powershell|https?://)", re.IGNORECASE)


def sanitize_csv_value(value: str) -> str:
    """Neutralize cells a spreadsheet would evaluate by prefixing a tab."""
    value = (value or "").strip()
    if value.startswith(FORMULA_PREFIXES) or RISKY_VALUE.match(value):
        return "\t" + value
    return value


def parse_amount(value: str) -> Decimal:
    clean = value.strip().replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    if not clean:
        raise ValueError("Amount is required")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def export_transactions(
    transactions: Sequence[Any], category_names: dict[Any, str]
) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADER)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                sanitize_csv_value(txn.title),
                sanitize_csv_value(category_names.get(txn.category_id, "")),
                TYPE_LABELS.get(txn.type, str(txn.type)),
                f"{float(txn.amount):.2f}",
            ]
        )
    return output.getvalue()
