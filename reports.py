"""Report filtering and the report-page calculations built on the ledger."""

import json
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional, Sequence

from pydantic import ValidationError

from accounts import GENERIC_ICON, Account
from config_store import REPORT_TEMPLATES_KEY, ConfigStore
from ledger import (
    FlowType,
    TransactionRecord,
    account_totals,
    category_totals,
    classify_flow,
    monthly_totals,
    resolve_sides,
    totals,
)
from periods import Period, resolve_period
from schemas import ReportSettings, ReportTemplate, ReportViews

logger = logging.getLogger(__name__)


class AccountGroup(str, Enum):
    cash = "cash"
    banks = "banks"
    investments = "investments"
    liabilities = "liabilities"


_INVESTMENT_WORDS = ("mutual", "mf", "stock", "share", "investment")
_LIABILITY_WORDS = ("loan", "debt", "liability")


def account_groups(accounts: Sequence[Account]) -> dict[AccountGroup, set[str]]:
    """Bucket the current accounts by id/name keywords.

    Matching is by substring on the lower-cased name, so a renamed account
    can move between groups or sit in several at once.
    """
    groups: dict[AccountGroup, set[str]] = {group: set() for group in AccountGroup}
    for acc in accounts:
        name = (acc.name or "").lower()
        if "cash" in acc.id.lower() or "cash" in name:
            groups[AccountGroup.cash].add(acc.id)
        if acc.id.startswith("bank") or "bank" in name:
            groups[AccountGroup.banks].add(acc.id)
        if any(word in name for word in _INVESTMENT_WORDS):
            groups[AccountGroup.investments].add(acc.id)
        if any(word in name for word in _LIABILITY_WORDS) or acc.id == "udhari":
            groups[AccountGroup.liabilities].add(acc.id)
    return groups


@dataclass(frozen=True)
class ReportCriteria:
    period: Optional[Period] = None
    flow_types: frozenset[FlowType] = frozenset()
    account_groups: frozenset[str] = frozenset()
    categories: frozenset[str] = frozenset()

    @classmethod
    def from_settings(
        cls, settings: ReportSettings, *, today: Optional[date] = None
    ) -> "ReportCriteria":
        return cls(
            period=resolve_period(
                settings.date_range, settings.from_date, settings.to_date, today=today
            ),
            flow_types=frozenset(classify_flow(t) for t in settings.types),
            account_groups=frozenset(settings.accounts),
            categories=frozenset(settings.categories),
        )


def filter_transactions(
    txns: Iterable[TransactionRecord],
    criteria: ReportCriteria,
    accounts: Sequence[Account],
) -> list[TransactionRecord]:
    """Keep transactions matching every non-empty dimension of ``criteria``.

    An empty selection in a dimension passes everything. Input order is kept.
    """
    period = criteria.period if criteria.period and criteria.period.is_bounded else None

    selected_ids: set[str] = set()
    if criteria.account_groups:
        groups = account_groups(accounts)
        for name in criteria.account_groups:
            try:
                selected_ids |= groups[AccountGroup(name)]
            except ValueError:
                continue
    # Groups that resolve to no accounts do not filter.
    has_account_filter = bool(selected_ids)

    result: list[TransactionRecord] = []
    for txn in txns:
        if period is not None:
            if txn.date is None or not period.contains(txn.date):
                continue
        if criteria.flow_types and txn.flow not in criteria.flow_types:
            continue
        if has_account_filter:
            debit_id, credit_id = resolve_sides(txn, accounts)
            if debit_id not in selected_ids and credit_id not in selected_ids:
                continue
        if criteria.categories and (txn.category or "Other") not in criteria.categories:
            continue
        result.append(txn)
    return result


def _label(account_id: Optional[str], accounts: Sequence[Account], *, with_icon: bool) -> str:
    if not account_id:
        return "-"
    for acc in accounts:
        if acc.id == account_id:
            name = acc.name or account_id
            return f"{acc.icon or ''} {name}".strip() if with_icon else name
    return account_id


def summary_section(txns: Sequence[TransactionRecord]) -> dict[str, int]:
    result = totals(txns)
    return {
        "outgoing_cents": result.outgoing_cents,
        "incoming_cents": result.incoming_cents,
        "net_cents": result.net_cents,
    }


def category_table(txns: Sequence[TransactionRecord]) -> list[dict[str, object]]:
    rows = [
        {
            "category": name,
            "outgoing_cents": entry.outgoing_cents,
            "incoming_cents": entry.incoming_cents,
            "net_cents": entry.incoming_cents - entry.outgoing_cents,
        }
        for name, entry in category_totals(txns).items()
    ]
    rows.sort(key=lambda row: row["outgoing_cents"] + row["incoming_cents"], reverse=True)
    return rows


def account_table(
    txns: Sequence[TransactionRecord], accounts: Sequence[Account]
) -> list[dict[str, object]]:
    """Pay/receive activity per resolved account; transfers are left out."""
    activity: dict[str, dict[str, int]] = {}
    for txn in txns:
        debit_id, credit_id = resolve_sides(txn, accounts)
        if txn.flow is FlowType.outgoing and debit_id:
            entry = activity.setdefault(debit_id, {"outgoing": 0, "incoming": 0})
            entry["outgoing"] += txn.amount_cents
        elif txn.flow is FlowType.incoming and credit_id:
            entry = activity.setdefault(credit_id, {"outgoing": 0, "incoming": 0})
            entry["incoming"] += txn.amount_cents
    rows = [
        {
            "account_id": account_id,
            "label": _label(account_id, accounts, with_icon=True),
            "outgoing_cents": entry["outgoing"],
            "incoming_cents": entry["incoming"],
            "net_cents": entry["incoming"] - entry["outgoing"],
        }
        for account_id, entry in activity.items()
    ]
    rows.sort(key=lambda row: row["outgoing_cents"] + row["incoming_cents"], reverse=True)
    return rows


def monthly_trend(txns: Sequence[TransactionRecord]) -> list[dict[str, object]]:
    return [
        {
            "month": month,
            "outgoing_cents": entry.outgoing_cents,
            "incoming_cents": entry.incoming_cents,
            "net_cents": entry.net_cents,
        }
        for month, entry in sorted(monthly_totals(txns).items())
    ]


def detailed_transactions(
    txns: Sequence[TransactionRecord], accounts: Sequence[Account]
) -> list[dict[str, object]]:
    rows = []
    for txn in txns:
        debit_id, credit_id = resolve_sides(txn, accounts)
        rows.append(
            {
                "id": txn.id,
                "date": txn.date.isoformat() if txn.date else None,
                "type": txn.type.lower(),
                "category": txn.category or "Other",
                "description": txn.description or "-",
                "from_account": _label(debit_id, accounts, with_icon=True),
                "to_account": _label(credit_id, accounts, with_icon=True),
                "amount_cents": txn.amount_cents,
            }
        )
    # Undated rows sink to the end.
    rows.sort(key=lambda row: row["date"] or "", reverse=True)
    return rows


def _in_range(
    txns: Iterable[TransactionRecord], period: Optional[Period]
) -> list[TransactionRecord]:
    return filter_transactions(txns, ReportCriteria(period=period), ())


def expense_summary(
    txns: Iterable[TransactionRecord], period: Optional[Period] = None
) -> dict[str, object]:
    outgoing = [t for t in _in_range(txns, period) if t.flow is FlowType.outgoing]
    return {
        "total_cents": totals(outgoing).outgoing_cents,
        "categories": [
            {"category": name, "amount_cents": entry.outgoing_cents}
            for name, entry in category_totals(outgoing, FlowType.outgoing).items()
        ],
    }


def income_summary(
    txns: Iterable[TransactionRecord], period: Optional[Period] = None
) -> dict[str, object]:
    incoming = [t for t in _in_range(txns, period) if t.flow is FlowType.incoming]
    return {
        "total_cents": totals(incoming).incoming_cents,
        "categories": [
            {"category": name, "amount_cents": entry.incoming_cents}
            for name, entry in category_totals(incoming, FlowType.incoming).items()
        ],
    }


def category_wise_expenses(
    txns: Iterable[TransactionRecord], period: Optional[Period] = None
) -> list[dict[str, object]]:
    summary = expense_summary(txns, period)
    return sorted(summary["categories"], key=lambda row: row["amount_cents"], reverse=True)


def account_wise(
    txns: Sequence[TransactionRecord],
    accounts: Sequence[Account],
    period: Optional[Period] = None,
) -> list[dict[str, object]]:
    """Period inflow/outflow per account next to its all-time balance."""
    in_period = account_totals(_in_range(txns, period), accounts)
    current = account_totals(txns, accounts)
    rows = []
    for acc in sorted(accounts, key=lambda a: a.order):
        entry = in_period[acc.id]
        rows.append(
            {
                "account_id": acc.id,
                "name": acc.name or acc.id,
                "icon": acc.icon or GENERIC_ICON,
                "opening_balance_cents": acc.opening_balance_cents,
                "inflow_cents": entry.inflow_cents,
                "outflow_cents": entry.outflow_cents,
                "current_balance_cents": current[acc.id].balance_cents,
            }
        )
    return rows


def build_report(
    all_txns: Sequence[TransactionRecord],
    criteria: ReportCriteria,
    accounts: Sequence[Account],
    views: Optional[ReportViews] = None,
) -> dict[str, object]:
    views = views or ReportViews()
    if not all_txns:
        return {"empty": True, "has_data": False, "transaction_count": 0}
    filtered = filter_transactions(all_txns, criteria, accounts)
    if not filtered:
        return {"empty": True, "has_data": True, "transaction_count": 0}

    report: dict[str, object] = {
        "empty": False,
        "has_data": True,
        "transaction_count": len(filtered),
    }
    if views.summary:
        report["summary"] = summary_section(filtered)
    if views.category_table:
        report["category_table"] = category_table(filtered)
    if views.account_table:
        report["account_table"] = account_table(filtered, accounts)
    if views.trend_chart:
        report["monthly_trend"] = monthly_trend(filtered)
    if views.detail_table:
        report["detail"] = detailed_transactions(filtered, accounts)
    return report


class ReportTemplateStore:
    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def list(self) -> list[ReportTemplate]:
        raw = self.store.get(REPORT_TEMPLATES_KEY)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("report_templates_unreadable: ignoring stored templates")
            return []
        if not isinstance(parsed, list):
            return []
        templates: list[ReportTemplate] = []
        for item in parsed:
            try:
                templates.append(ReportTemplate.model_validate(item))
            except ValidationError:
                logger.warning(f"report_template_skipped: entry={item!r}")
        return templates

    def _save(self, templates: Sequence[ReportTemplate]) -> None:
        self.store.set(
            REPORT_TEMPLATES_KEY,
            json.dumps([t.model_dump(mode="json") for t in templates], ensure_ascii=False),
        )

    def save(self, name: str, settings: ReportSettings) -> Optional[ReportTemplate]:
        clean = (name or "").strip()
        if not clean:
            return None
        template = ReportTemplate(name=clean, **settings.model_dump(exclude={"name"}))
        templates = self.list()
        for index, existing in enumerate(templates):
            if existing.name == clean:
                templates[index] = template
                break
        else:
            templates.append(template)
        self._save(templates)
        return template

    def delete(self, index: int) -> bool:
        templates = self.list()
        if index < 0 or index >= len(templates):
            return False
        templates.pop(index)
        self._save(templates)
        return True
