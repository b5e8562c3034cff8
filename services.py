from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from rapidfuzz.distance import Levenshtein

from accounts import AccountRegistry
from auth import ExternalIdentity
from categories import CategoryConfig, CategoryRegistry
from config import get_settings
from csv_utils import export_transactions, parse_csv
from ledger import (
    FlowType,
    TransactionRecord,
    account_balances,
    classify_flow,
    coerce_cents,
    net_worth,
    totals,
)
from models import ConfigEntry, Transaction, User
from periods import Period, month_bounds
from reports import (
    ReportCriteria,
    ReportTemplateStore,
    account_wise,
    build_report,
    category_wise_expenses,
    detailed_transactions,
    expense_summary,
    filter_transactions,
    income_summary,
    monthly_trend,
)
from schemas import (
    BulkTransactionIn,
    CSVRow,
    ReportSettings,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

RECENT_LIMIT = 15


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def transaction_payload(record: TransactionRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "date": record.date.isoformat() if record.date else None,
        "type": record.type,
        "category": record.category,
        "description": record.description,
        "amount_cents": record.amount_cents,
        "debit_account": record.debit_account,
        "credit_account": record.credit_account,
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


class SqlConfigStore:
    """Per-user configuration values kept in ``config_entries``."""

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.scope = f"user:{user_id}"

    def _entry(self, key: str) -> Optional[ConfigEntry]:
        return self.session.scalar(
            select(ConfigEntry).where(
                ConfigEntry.scope == self.scope, ConfigEntry.key == key
            )
        )

    def get(self, key: str) -> Optional[str]:
        entry = self._entry(key)
        return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        entry = self._entry(key)
        if entry is None:
            self.session.add(ConfigEntry(scope=self.scope, key=key, value=value))
        else:
            entry.value = value
        self.session.commit()

    def delete(self, key: str) -> None:
        entry = self._entry(key)
        if entry is None:
            return
        self.session.delete(entry)
        self.session.commit()


class TransactionNotFound(ValueError):
    pass


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
        )
        return list(self.session.scalars(stmt).all())

    def records(self) -> list[TransactionRecord]:
        return [TransactionRecord.from_model(txn) for txn in self.list()]

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise TransactionNotFound("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            type=data.type,
            amount_cents=coerce_cents(data.amount),
            category=data.category,
            description=data.description,
            debit_account=data.debit_account,
            credit_account=data.credit_account,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_created: id={txn.id} type={txn.type}")
        return txn

    def bulk_create(self, items: Sequence[BulkTransactionIn]) -> int:
        if not items:
            raise ValueError("No transactions to import")
        today = local_today()
        for item in items:
            self.session.add(
                Transaction(
                    user_id=self.user_id,
                    date=item.date or today,
                    type=(item.type or "pay").strip().lower() or "pay",
                    amount_cents=abs(coerce_cents(item.amount)),
                    category=(item.category or "").strip() or "Other",
                    description=(item.description or "").strip(),
                    debit_account=(item.debit_account or "").strip(),
                    credit_account=(item.credit_account or "").strip(),
                )
            )
        self.session.commit()
        logger.info(f"transactions_bulk_created: count={len(items)}")
        return len(items)

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "amount" in changes:
            txn.amount_cents = coerce_cents(changes.pop("amount"))
        if "type" in changes:
            changes["type"] = changes["type"].strip().lower()
        for field, value in changes.items():
            if isinstance(value, str) and field != "type":
                value = value.strip()
            setattr(txn, field, value)
        if not txn.category:
            txn.category = "Other"
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id}")


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_or_create(self, identity: ExternalIdentity) -> User:
        user = self.session.scalar(
            select(User).where(User.external_id == identity.subject)
        )
        if user:
            return user
        user = User(name=identity.name, email=identity.email, external_id=identity.subject)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id}")
        return user

    def profile(self, user_id: int) -> dict[str, object]:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError("User not found")
        return {"id": user.id, "name": user.name, "email": user.email}


class DashboardService:
    def __init__(self, session: Session, user_id: int, store=None) -> None:
        self.session = session
        self.user_id = user_id
        self.txn_service = TransactionService(session, user_id)
        self.accounts = AccountRegistry(store or SqlConfigStore(session, user_id))

    def balances(self, records: Optional[list[TransactionRecord]] = None) -> list[dict[str, object]]:
        records = self.txn_service.records() if records is None else records
        accounts = self.accounts.list_accounts()
        balances = account_balances(records, accounts)
        return [
            {
                "account_id": acc.id,
                "name": acc.name,
                "icon": acc.icon,
                "balance_cents": balances[acc.id],
            }
            for acc in accounts
            if acc.visible
        ]

    def net_worth(self, records: Optional[list[TransactionRecord]] = None) -> int:
        records = self.txn_service.records() if records is None else records
        return net_worth(records, self.accounts.list_accounts())

    def summary(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        records = self.txn_service.records()
        first, last = month_bounds(today)
        month = Period("this_month", first, last)
        this_month = [r for r in records if r.date and month.contains(r.date)]
        return {
            "total_outgoing_cents": totals(records).outgoing_cents,
            "month_outgoing_cents": totals(this_month).outgoing_cents,
            "recent": [transaction_payload(r) for r in records[:RECENT_LIMIT]],
            "balances": self.balances(records),
            "net_worth_cents": self.net_worth(records),
        }


class ReportService:
    def __init__(self, session: Session, user_id: int, store=None) -> None:
        self.session = session
        self.user_id = user_id
        self.store = store or SqlConfigStore(session, user_id)
        self.txn_service = TransactionService(session, user_id)
        self.templates = ReportTemplateStore(self.store)

    def run(self, settings: ReportSettings, today: Optional[date] = None) -> dict[str, object]:
        criteria = ReportCriteria.from_settings(settings, today=today or local_today())
        accounts = AccountRegistry(self.store).list_accounts()
        return build_report(self.txn_service.records(), criteria, accounts, settings.views)

    def overview(self, period: Optional[Period] = None) -> dict[str, object]:
        records = self.txn_service.records()
        accounts = AccountRegistry(self.store).list_accounts()
        in_range = filter_transactions(records, ReportCriteria(period=period), accounts)
        return {
            "expenses": expense_summary(records, period),
            "income": income_summary(records, period),
            "category_wise_expenses": category_wise_expenses(records, period),
            "account_wise": account_wise(records, accounts, period),
            "monthly_trend": monthly_trend(in_range),
            "detail": detailed_transactions(in_range, accounts),
        }


class CSVService:
    def __init__(self, session: Session, user_id: int, store=None) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryRegistry(store or SqlConfigStore(session, user_id))
        self.txn_service = TransactionService(session, user_id)

    @staticmethod
    def _snap_category(label: str, flow: FlowType, config: CategoryConfig) -> str:
        if flow not in (FlowType.outgoing, FlowType.incoming):
            return label
        known = config.side(flow)
        input_lower = label.lower()
        for name in known:
            if name.lower() == input_lower:
                return name
        best_distance: Optional[int] = None
        best: list[str] = []
        for name in known:
            dist = int(Levenshtein.distance(input_lower, name.lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [name]
            elif dist == best_distance:
                best.append(name)
        if best_distance is not None and best_distance <= 1 and len(best) == 1:
            return best[0]
        return label

    def preview(self, content: str) -> tuple[list[CSVRow], list[str]]:
        rows, errors = parse_csv(content)
        config = self.categories.get_categories()
        for row in rows:
            row.category = self._snap_category(row.category, classify_flow(row.type), config)
        return rows, errors

    def commit(self, content: str) -> tuple[int, list[str]]:
        rows, errors = self.preview(content)
        for error in errors:
            logger.warning(f"csv_row_skipped: {error}")
        for row in rows:
            self.session.add(
                Transaction(
                    user_id=self.user_id,
                    date=row.date,
                    type=row.type,
                    amount_cents=row.amount_cents,
                    category=row.category,
                    description=row.description,
                    debit_account=row.debit_account,
                    credit_account=row.credit_account,
                )
            )
        self.session.commit()
        logger.info(f"csv_imported: rows={len(rows)} errors={len(errors)}")
        return len(rows), errors

    def export(self) -> str:
        return export_transactions(self.txn_service.records())
