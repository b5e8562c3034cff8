import csv
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from ledger import FlowType, TransactionRecord, classify_flow
from schemas import CSVRow

CSV_COLUMNS = ["Date", "Type", "Category", "Description", "Amount", "From", "To"]


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


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    clean = value.strip()
    for symbol in ("₹", "€", "$", "Rs.", " "):
        clean = clean.replace(symbol, "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def parse_csv(content: str) -> tuple[list[CSVRow], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            date_value = parse_date((raw.get("Date") or "").strip())
            type_raw = (raw.get("Type") or "").strip().lower()
            flow = classify_flow(type_raw)
            if flow is FlowType.unrecognized:
                raise ValueError(f"Unknown type '{type_raw}'")
            debit = (raw.get("From") or "").strip()
            credit = (raw.get("To") or "").strip()
            if flow in (FlowType.outgoing, FlowType.transfer) and not debit:
                raise ValueError(f"'{type_raw}' needs a From account")
            if flow in (FlowType.incoming, FlowType.transfer) and not credit:
                raise ValueError(f"'{type_raw}' needs a To account")
            rows.append(
                CSVRow(
                    date=date_value,
                    type=flow.value,
                    amount_cents=parse_amount(raw.get("Amount") or "0"),
                    category=(raw.get("Category") or "").strip() or "Other",
                    description=(raw.get("Description") or "").strip(),
                    debit_account=debit,
                    credit_account=credit,
                )
            )
        except Exception as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def export_transactions(transactions: Sequence[TransactionRecord]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat() if txn.date else "",
                txn.type,
                sanitize_csv_value(txn.category),
                sanitize_csv_value(txn.description),
                f"{txn.amount_cents / 100:.2f}",
                sanitize_csv_value(txn.debit_account),
                sanitize_csv_value(txn.credit_account),
            ]
        )
    return output.getvalue()
