"""Ledger aggregation over an in-memory transaction snapshot.

Every function here is pure: it takes the transactions and the account
list it needs and returns fresh values. Amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Sequence

from accounts import Account, resolve_account_ref


class FlowType(str, Enum):
    outgoing = "pay"
    incoming = "receive"
    transfer = "transfer"
    unrecognized = "unrecognized"


def classify_flow(raw_type: Optional[str]) -> FlowType:
    try:
        return FlowType(str(raw_type or "").lower())
    except ValueError:
        return FlowType.unrecognized


def coerce_cents(value: Any) -> int:
    """Convert a raw major-unit amount to cents; anything non-numeric is 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return 0
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return 0


def coerce_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError:
        return None


@dataclass(frozen=True)
class TransactionRecord:
    id: Optional[int]
    date: Optional[date]
    category: str
    description: str
    amount_cents: int
    debit_account: str
    credit_account: str
    type: str
    created_at: Optional[datetime] = None

    @property
    def flow(self) -> FlowType:
        return classify_flow(self.type)

    @classmethod
    def from_model(cls, txn: Any) -> "TransactionRecord":
        return cls(
            id=txn.id,
            date=txn.date,
            category=txn.category or "Other",
            description=txn.description or "",
            amount_cents=int(txn.amount_cents or 0),
            debit_account=txn.debit_account or "",
            credit_account=txn.credit_account or "",
            type=txn.type or "",
            created_at=txn.created_at,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TransactionRecord":
        """Build a record from loosely-typed JSON (major-unit ``amount``)."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        created = pick("created_at", "createdAt")
        if isinstance(created, str):
            try:
                created = datetime.fromisoformat(created)
            except ValueError:
                created = None
        if "amount_cents" in data:
            try:
                amount_cents = int(data["amount_cents"])
            except (TypeError, ValueError):
                amount_cents = 0
        else:
            amount_cents = coerce_cents(data.get("amount"))
        return cls(
            id=data.get("id"),
            date=coerce_date(data.get("date")),
            category=str(data.get("category") or "Other"),
            description=str(data.get("description") or ""),
            amount_cents=amount_cents,
            debit_account=str(pick("debit_account", "debitAccount") or ""),
            credit_account=str(pick("credit_account", "creditAccount") or ""),
            type=str(pick("type", "transactionType") or ""),
            created_at=created if isinstance(created, datetime) else None,
        )


class AccountSides(NamedTuple):
    debit_id: Optional[str]
    credit_id: Optional[str]


def resolve_sides(txn: TransactionRecord, accounts: Sequence[Account]) -> AccountSides:
    return AccountSides(
        resolve_account_ref(txn.debit_account, accounts),
        resolve_account_ref(txn.credit_account, accounts),
    )


@dataclass(frozen=True)
class Totals:
    outgoing_cents: int
    incoming_cents: int

    @property
    def net_cents(self) -> int:
        return self.incoming_cents - self.outgoing_cents


@dataclass
class CategoryTotal:
    outgoing_cents: int = 0
    incoming_cents: int = 0
    total_cents: int = 0


@dataclass
class AccountLedgerEntry:
    account_id: str
    inflow_cents: int = 0
    outflow_cents: int = 0
    balance_cents: int = 0


@dataclass
class MonthTotal:
    outgoing_cents: int = 0
    incoming_cents: int = 0

    @property
    def net_cents(self) -> int:
        return self.incoming_cents - self.outgoing_cents


def totals(txns: Iterable[TransactionRecord]) -> Totals:
    outgoing = 0
    incoming = 0
    for txn in txns:
        flow = txn.flow
        if flow is FlowType.outgoing:
            outgoing += txn.amount_cents
        elif flow is FlowType.incoming:
            incoming += txn.amount_cents
    return Totals(outgoing_cents=outgoing, incoming_cents=incoming)


def category_totals(
    txns: Iterable[TransactionRecord], side: Optional[FlowType] = None
) -> dict[str, CategoryTotal]:
    """Per-category sums.

    With ``side`` set to outgoing or incoming, only categories with a nonzero
    amount on that side are kept, and the other side is reported as zero.
    """
    result: dict[str, CategoryTotal] = {}
    for txn in txns:
        entry = result.setdefault(txn.category or "Other", CategoryTotal())
        flow = txn.flow
        if flow is FlowType.outgoing:
            entry.outgoing_cents += txn.amount_cents
            entry.total_cents += txn.amount_cents
        elif flow is FlowType.incoming:
            entry.incoming_cents += txn.amount_cents
            entry.total_cents += txn.amount_cents

    if side is FlowType.outgoing:
        return {
            name: CategoryTotal(entry.outgoing_cents, 0, entry.outgoing_cents)
            for name, entry in result.items()
            if entry.outgoing_cents != 0
        }
    if side is FlowType.incoming:
        return {
            name: CategoryTotal(0, entry.incoming_cents, entry.incoming_cents)
            for name, entry in result.items()
            if entry.incoming_cents != 0
        }
    return result


def account_totals(
    txns: Iterable[TransactionRecord], accounts: Sequence[Account]
) -> dict[str, AccountLedgerEntry]:
    """Inflow, outflow and balance for every known account, hidden ones included.

    Transfers move balances only. References that do not resolve to a known
    account are skipped.
    """
    result = {
        acc.id: AccountLedgerEntry(acc.id, balance_cents=acc.opening_balance_cents)
        for acc in accounts
    }
    for txn in txns:
        flow = txn.flow
        if flow is FlowType.unrecognized:
            continue
        debit_id, credit_id = resolve_sides(txn, accounts)
        debit = result.get(debit_id) if debit_id else None
        credit = result.get(credit_id) if credit_id else None
        amount = txn.amount_cents
        if flow is FlowType.outgoing:
            if debit is not None:
                debit.outflow_cents += amount
                debit.balance_cents -= amount
        elif flow is FlowType.incoming:
            if credit is not None:
                credit.inflow_cents += amount
                credit.balance_cents += amount
        else:
            if debit is not None:
                debit.balance_cents -= amount
            if credit is not None:
                credit.balance_cents += amount
    return result


def account_balances(
    txns: Iterable[TransactionRecord], accounts: Sequence[Account]
) -> dict[str, int]:
    return {
        account_id: entry.balance_cents
        for account_id, entry in account_totals(txns, accounts).items()
    }


def monthly_totals(txns: Iterable[TransactionRecord]) -> dict[str, MonthTotal]:
    """Outgoing/incoming per ``YYYY-MM``, in first-seen order; undated rows are skipped."""
    result: dict[str, MonthTotal] = {}
    for txn in txns:
        if txn.date is None:
            continue
        entry = result.setdefault(f"{txn.date.year:04d}-{txn.date.month:02d}", MonthTotal())
        flow = txn.flow
        if flow is FlowType.outgoing:
            entry.outgoing_cents += txn.amount_cents
        elif flow is FlowType.incoming:
            entry.incoming_cents += txn.amount_cents
    return result


def net_worth(txns: Iterable[TransactionRecord], accounts: Sequence[Account]) -> int:
    return sum(entry.balance_cents for entry in account_totals(txns, accounts).values())
