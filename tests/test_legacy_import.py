import json
from datetime import date

from legacy_import import parse_legacy_expenses


def test_legacy_expenses_become_cash_payments() -> None:
    content = json.dumps(
        [
            {"id": 1, "date": "2024-12-01", "category": "Food", "description": "Tea", "amount": "15"},
            {"id": 2, "amount": 40},
            "garbage",
        ]
    )

    items = parse_legacy_expenses(content)

    assert len(items) == 2
    assert items[0].date == date(2024, 12, 1)
    assert items[0].type == "pay"
    assert items[0].debit_account == "cash"
    assert items[0].credit_account == ""
    assert items[1].date is None
    assert items[1].category == "Other"
    assert items[1].description == ""


def test_malformed_or_non_list_imports_nothing() -> None:
    assert parse_legacy_expenses("{broken") == []
    assert parse_legacy_expenses(json.dumps({"amount": 5})) == []
    assert parse_legacy_expenses("") == []


def test_non_string_fields_are_coerced() -> None:
    content = json.dumps(
        [{"date": "2024-01-05", "category": 7, "description": 123, "amount": 5}]
    )

    items = parse_legacy_expenses(content)

    assert len(items) == 1
    assert items[0].description == "123"
    assert items[0].category == "7"
