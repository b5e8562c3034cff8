"""Convert the old single-list expense format into bulk transactions."""

import json
import logging

from pydantic import ValidationError

from ledger import coerce_date
from schemas import BulkTransactionIn

logger = logging.getLogger(__name__)

LEGACY_DEBIT_ACCOUNT = "cash"


def parse_legacy_expenses(content: str) -> list[BulkTransactionIn]:
    """Map ``[{id, date, category, description, amount}, ...]`` to pay rows.

    Malformed JSON or anything other than a list yields no rows.
    """
    try:
        parsed = json.loads(content or "")
    except ValueError:
        logger.warning("legacy_import_unreadable: nothing imported")
        return []
    if not isinstance(parsed, list):
        logger.warning("legacy_import_not_a_list: nothing imported")
        return []

    items: list[BulkTransactionIn] = []
    for expense in parsed:
        if not isinstance(expense, dict):
            logger.info(f"legacy_import_entry_skipped: entry={expense!r}")
            continue
        try:
            items.append(
                BulkTransactionIn(
                    date=coerce_date(expense.get("date")),
                    type="pay",
                    amount=expense.get("amount"),
                    category=expense.get("category") or "Other",
                    description=expense.get("description") or "",
                    debit_account=LEGACY_DEBIT_ACCOUNT,
                    credit_account="",
                )
            )
        except ValidationError:
            logger.warning(f"legacy_import_entry_skipped: entry={expense!r}")
    return items
