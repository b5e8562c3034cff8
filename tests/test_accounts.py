import json

from accounts import (
    DEFAULT_ACCOUNTS,
    Account,
    AccountDeletion,
    AccountRegistry,
    resolve_account_ref,
)
from config_store import ACCOUNT_CONFIG_KEY, LEGACY_ACCOUNT_NAMES_KEY, MemoryConfigStore


def _ids(accounts) -> list[str]:
    return [acc.id for acc in accounts]


def test_defaults_listed_in_order_without_stored_config() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    accounts = registry.list_accounts()

    assert _ids(accounts) == ["bank1", "bank2", "bank3", "cash", "udhari", "advance"]
    assert all(acc.is_default for acc in accounts)
    assert [acc.order for acc in accounts] == list(range(6))


def test_list_accounts_is_idempotent() -> None:
    registry = AccountRegistry(MemoryConfigStore())
    registry.add_account("Wallet", "👛", 2500)

    assert registry.list_accounts() == registry.list_accounts()


def test_add_account_rejects_blank_name() -> None:
    store = MemoryConfigStore()
    registry = AccountRegistry(store)

    assert registry.add_account("   ") is None
    assert store.get(ACCOUNT_CONFIG_KEY) is None


def test_add_account_appends_custom_account() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    created = registry.add_account("Wallet", opening_balance_cents=2500)

    assert created is not None
    assert created.id.startswith("account_")
    assert created.order == len(DEFAULT_ACCOUNTS)
    assert created.visible is True
    assert created.is_default is False
    assert registry.get_account(created.id).opening_balance_cents == 2500


def test_only_custom_or_changed_accounts_are_persisted() -> None:
    store = MemoryConfigStore()
    registry = AccountRegistry(store)

    assert registry.update_account("cash", name="Wallet")

    stored = json.loads(store.get(ACCOUNT_CONFIG_KEY))
    assert [entry["id"] for entry in stored] == ["cash"]
    assert registry.display_name("cash") == "Wallet"
    assert registry.display_name("cash", with_icon=True) == "💵 Wallet"


def test_update_account_rejects_unknown_id_and_blank_name() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    assert registry.update_account("missing", name="X") is False
    assert registry.update_account("cash", name="  ") is False
    assert registry.get_account("cash").name == "Cash Balance"


def test_hidden_account_is_excluded_from_visible_accounts() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    assert registry.update_account("bank3", visible=False)

    assert "bank3" not in _ids(registry.visible_accounts())
    assert "bank3" in _ids(registry.list_accounts())


def test_delete_default_account_is_forbidden() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    assert registry.delete_account("cash") is AccountDeletion.forbidden
    assert registry.delete_account("nope") is AccountDeletion.not_found
    assert "cash" in _ids(registry.list_accounts())


def test_delete_account_renumbers_remaining_order() -> None:
    registry = AccountRegistry(MemoryConfigStore())
    first = registry.add_account("Wallet")
    second = registry.add_account("Savings")
    assert first is not None and second is not None
    assert registry.reorder_account(first.id, "bank2")
    before = [acc.id for acc in registry.list_accounts() if acc.id != first.id]

    assert registry.delete_account(first.id) is AccountDeletion.deleted

    after = registry.list_accounts()
    assert _ids(after) == before
    assert [acc.order for acc in after] == list(range(len(after)))


def test_reorder_moves_account_to_target_position() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    assert registry.reorder_account("cash", "bank1")

    accounts = registry.list_accounts()
    assert _ids(accounts) == ["cash", "bank1", "bank2", "bank3", "udhari", "advance"]
    assert [acc.order for acc in accounts] == list(range(6))
    assert registry.reorder_account("cash", "missing") is False


def test_set_display_name_by_legacy_name_and_restore_default() -> None:
    registry = AccountRegistry(MemoryConfigStore())

    assert registry.set_display_name("Cash Balance", "Pocket")
    assert registry.get_account("cash").name == "Pocket"

    assert registry.set_display_name("cash", "")
    assert registry.get_account("cash").name == "Cash Balance"


def test_resolve_legacy_name_without_matching_account() -> None:
    registry = AccountRegistry(MemoryConfigStore())
    registry.update_account("cash", name="Pocket")
    accounts = registry.list_accounts()

    assert all(acc.name != "Cash Balance" for acc in accounts)
    assert resolve_account_ref("Cash Balance", accounts) == "cash"
    assert resolve_account_ref("Pocket", accounts) == "cash"
    assert resolve_account_ref("bank2", accounts) == "bank2"
    assert resolve_account_ref("Ramesh", accounts) == "Ramesh"
    assert resolve_account_ref("", accounts) is None


def test_legacy_account_names_are_migrated_once() -> None:
    store = MemoryConfigStore(
        {
            LEGACY_ACCOUNT_NAMES_KEY: json.dumps(
                {"Cash Balance": "My Wallet", "Udhaari": "Udhaari"}
            )
        }
    )
    registry = AccountRegistry(store)

    accounts = {acc.id: acc for acc in registry.list_accounts()}

    assert accounts["cash"].name == "My Wallet"
    assert accounts["udhari"].name == "Udhaari"
    assert store.get(LEGACY_ACCOUNT_NAMES_KEY) is None
    assert registry.migrate_legacy_account_names() == 0


def test_malformed_account_config_falls_back_to_defaults() -> None:
    store = MemoryConfigStore({ACCOUNT_CONFIG_KEY: "{not json"})

    accounts = AccountRegistry(store).list_accounts()

    assert _ids(accounts) == [acc.id for acc in DEFAULT_ACCOUNTS]


def test_id_match_wins_over_name_match() -> None:
    accounts = list(DEFAULT_ACCOUNTS) + [Account("x1", "bank2")]

    assert resolve_account_ref("bank2", accounts) == "bank2"
