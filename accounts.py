"""Account registry: fixed default accounts merged with stored overrides."""

import json
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence

from pydantic import ValidationError

from config_store import ACCOUNT_CONFIG_KEY, LEGACY_ACCOUNT_NAMES_KEY, ConfigStore
from schemas import AccountIn, StoredAccount

logger = logging.getLogger(__name__)

GENERIC_ICON = "💼"


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    icon: str = GENERIC_ICON
    visible: bool = True
    order: int = 0
    is_default: bool = False
    opening_balance_cents: int = 0


DEFAULT_ACCOUNTS: tuple[Account, ...] = (
    Account("bank1", "Bank Balance 01", "🏦", True, 0, True),
    Account("bank2", "Bank Balance 02", "🏦", True, 1, True),
    Account("bank3", "Bank Balance 03", "🏦", True, 2, True),
    Account("cash", "Cash Balance", "💵", True, 3, True),
    Account("udhari", "Udhaari", "📒", True, 4, True),
    Account("advance", "Advance", "💰", True, 5, True),
)

DEFAULTS_BY_ID: dict[str, Account] = {acc.id: acc for acc in DEFAULT_ACCOUNTS}

# Display names written on transactions before accounts had stable ids.
LEGACY_ACCOUNT_NAMES: dict[str, str] = {
    "Bank Balance 01": "bank1",
    "Bank Balance 02": "bank2",
    "Bank Balance 03": "bank3",
    "Cash Balance": "cash",
    "Udhaari": "udhari",
    "Advance": "advance",
}


class AccountDeletion(str, Enum):
    deleted = "deleted"
    forbidden = "forbidden"
    not_found = "not_found"


def merge_accounts(overrides: Sequence[StoredAccount]) -> list[Account]:
    merged: dict[str, Account] = {acc.id: acc for acc in DEFAULT_ACCOUNTS}
    for override in overrides:
        if not override.id:
            continue
        current = merged.get(override.id)
        if current is not None:
            changes = override.model_dump(exclude={"id"}, exclude_none=True)
            merged[override.id] = replace(current, **changes)
            continue
        merged[override.id] = Account(
            id=override.id,
            name=override.name or override.id,
            icon=override.icon or GENERIC_ICON,
            visible=True if override.visible is None else override.visible,
            order=len(merged) if override.order is None else override.order,
            is_default=False,
            opening_balance_cents=override.opening_balance_cents or 0,
        )
    # sorted() is stable, so equal orders keep insertion order.
    return sorted(merged.values(), key=lambda acc: acc.order)


def resolve_account_ref(ref: Optional[str], accounts: Sequence[Account]) -> Optional[str]:
    """Map a transaction's account reference to an account id.

    Tries an exact id, then an exact current name, then the legacy name
    table. Anything else is echoed back as an opaque id.
    """
    if not ref:
        return None
    for acc in accounts:
        if acc.id == ref:
            return ref
    for acc in accounts:
        if acc.name == ref:
            return acc.id
    return LEGACY_ACCOUNT_NAMES.get(ref, ref)


def _differs_from_default(acc: Account) -> bool:
    default = DEFAULTS_BY_ID.get(acc.id)
    if default is None:
        return True
    return (
        acc.name != default.name
        or acc.icon != default.icon
        or not acc.visible
        or acc.order != default.order
        or acc.opening_balance_cents != default.opening_balance_cents
    )


class AccountRegistry:
    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def _load_overrides(self) -> list[StoredAccount]:
        raw = self.store.get(ACCOUNT_CONFIG_KEY)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("account_config_unreadable: falling back to defaults")
            return []
        if not isinstance(parsed, list):
            return []
        overrides: list[StoredAccount] = []
        for item in parsed:
            try:
                overrides.append(StoredAccount.model_validate(item))
            except ValidationError:
                logger.warning(f"account_config_entry_skipped: entry={item!r}")
        return overrides

    def _save(self, accounts: Sequence[Account]) -> None:
        stored = [
            StoredAccount(
                id=acc.id,
                name=acc.name,
                icon=acc.icon,
                visible=acc.visible,
                order=acc.order,
                opening_balance_cents=acc.opening_balance_cents,
            ).model_dump()
            for acc in accounts
            if not acc.is_default or _differs_from_default(acc)
        ]
        self.store.set(ACCOUNT_CONFIG_KEY, json.dumps(stored, ensure_ascii=False))

    def list_accounts(self) -> list[Account]:
        self.migrate_legacy_account_names()
        return merge_accounts(self._load_overrides())

    def visible_accounts(self) -> list[Account]:
        return [acc for acc in self.list_accounts() if acc.visible is not False]

    def get_account(self, account_id: str) -> Optional[Account]:
        for acc in self.list_accounts():
            if acc.id == account_id:
                return acc
        return None

    def resolve_account_ref(self, ref: Optional[str]) -> Optional[str]:
        return resolve_account_ref(ref, self.list_accounts())

    def display_name(self, account_id: str, *, with_icon: bool = False) -> str:
        acc = self.get_account(account_id)
        if acc is None:
            return account_id
        name = acc.name or account_id
        if with_icon:
            return f"{acc.icon or ''} {name}".strip()
        return name

    def _new_account_id(self, accounts: Sequence[Account]) -> str:
        taken = {acc.id for acc in accounts}
        stamp = int(time.time() * 1000)
        candidate = f"account_{stamp}"
        counter = 1
        while candidate in taken:
            candidate = f"account_{stamp}_{counter}"
            counter += 1
        return candidate

    def upsert_account(self, data: AccountIn) -> Account:
        accounts = self.list_accounts()
        index = next(
            (i for i, acc in enumerate(accounts) if data.id and acc.id == data.id),
            None,
        )
        if index is not None:
            changes = data.model_dump(exclude={"id"}, exclude_none=True)
            for field in ("name", "icon"):
                if field in changes:
                    changes[field] = changes[field].strip()
                    if not changes[field]:
                        del changes[field]
            accounts[index] = replace(accounts[index], **changes)
            self._save(accounts)
            return accounts[index]

        account_id = data.id or self._new_account_id(accounts)
        account = Account(
            id=account_id,
            name=(data.name or "").strip() or account_id,
            icon=(data.icon or "").strip() or GENERIC_ICON,
            visible=True if data.visible is None else data.visible,
            order=len(accounts) if data.order is None else data.order,
            is_default=False,
            opening_balance_cents=data.opening_balance_cents or 0,
        )
        accounts.append(account)
        self._save(accounts)
        logger.info(f"account_created: id={account.id}")
        return account

    def add_account(
        self,
        name: str,
        icon: str = GENERIC_ICON,
        opening_balance_cents: int = 0,
    ) -> Optional[Account]:
        if not name or not name.strip():
            return None
        return self.upsert_account(
            AccountIn(
                name=name.strip(),
                icon=(icon or "").strip() or GENERIC_ICON,
                opening_balance_cents=opening_balance_cents,
            )
        )

    def update_account(self, account_id: str, **fields: object) -> bool:
        if self.get_account(account_id) is None:
            return False
        for field in ("name", "icon"):
            value = fields.get(field)
            if field in fields and (not isinstance(value, str) or not value.strip()):
                return False
        self.upsert_account(AccountIn(id=account_id, **fields))
        return True

    def set_display_name(self, ref: str, name: Optional[str]) -> bool:
        account_id = self.resolve_account_ref(ref)
        if not account_id or self.get_account(account_id) is None:
            return False
        clean = (name or "").strip()
        if not clean:
            default = DEFAULTS_BY_ID.get(account_id)
            clean = default.name if default else account_id
        return self.update_account(account_id, name=clean)

    def delete_account(self, account_id: str) -> AccountDeletion:
        accounts = self.list_accounts()
        target = next((acc for acc in accounts if acc.id == account_id), None)
        if target is None:
            return AccountDeletion.not_found
        if target.is_default:
            logger.info(f"account_delete_forbidden: id={account_id}")
            return AccountDeletion.forbidden
        remaining = [
            replace(acc, order=index)
            for index, acc in enumerate(a for a in accounts if a.id != account_id)
        ]
        self._save(remaining)
        logger.info(f"account_deleted: id={account_id}")
        return AccountDeletion.deleted

    def reorder_account(self, dragged_id: str, target_id: str) -> bool:
        accounts = self.list_accounts()
        ids = [acc.id for acc in accounts]
        if dragged_id not in ids or target_id not in ids:
            return False
        if dragged_id == target_id:
            return True
        moved = accounts.pop(ids.index(dragged_id))
        accounts.insert(ids.index(target_id), moved)
        self._save([replace(acc, order=index) for index, acc in enumerate(accounts)])
        return True

    def migrate_legacy_account_names(self) -> int:
        raw = self.store.get(LEGACY_ACCOUNT_NAMES_KEY)
        if not raw:
            return 0
        try:
            legacy_names = json.loads(raw)
        except ValueError:
            legacy_names = None
        if not isinstance(legacy_names, dict):
            self.store.delete(LEGACY_ACCOUNT_NAMES_KEY)
            return 0

        overrides = self._load_overrides()
        by_id = {o.id: o for o in overrides}
        migrated = 0
        for legacy_name, custom_name in legacy_names.items():
            account_id = LEGACY_ACCOUNT_NAMES.get(legacy_name)
            if not account_id or not isinstance(custom_name, str):
                continue
            if not custom_name or custom_name == legacy_name:
                continue
            existing = by_id.get(account_id)
            if existing is not None:
                existing.name = custom_name
            else:
                entry = StoredAccount(id=account_id, name=custom_name)
                overrides.append(entry)
                by_id[account_id] = entry
            migrated += 1

        if migrated:
            self.store.set(
                ACCOUNT_CONFIG_KEY,
                json.dumps(
                    [o.model_dump(exclude_none=True) for o in overrides],
                    ensure_ascii=False,
                ),
            )
            logger.info(f"legacy_account_names_migrated: count={migrated}")
        self.store.delete(LEGACY_ACCOUNT_NAMES_KEY)
        return migrated
