import json

import pytest

from categories import (
    DEFAULT_INCOMING_CATEGORIES,
    DEFAULT_OUTGOING_CATEGORIES,
    CategoryRegistry,
)
from config_store import CATEGORY_CONFIG_KEY, MemoryConfigStore
from ledger import FlowType


def test_defaults_without_stored_config() -> None:
    config = CategoryRegistry(MemoryConfigStore()).get_categories()

    assert config.outgoing == list(DEFAULT_OUTGOING_CATEGORIES)
    assert config.incoming == list(DEFAULT_INCOMING_CATEGORIES)


def test_each_side_falls_back_independently() -> None:
    store = MemoryConfigStore({CATEGORY_CONFIG_KEY: json.dumps({"pay": ["Rent"], "receive": []})})

    config = CategoryRegistry(store).get_categories()

    assert config.outgoing == ["Rent"]
    assert config.incoming == list(DEFAULT_INCOMING_CATEGORIES)


def test_add_category_rejects_blank_and_duplicates() -> None:
    registry = CategoryRegistry(MemoryConfigStore())

    assert registry.add_category(FlowType.outgoing, " Rent ")
    assert registry.add_category(FlowType.outgoing, "Rent") is False
    assert registry.add_category(FlowType.outgoing, "  ") is False

    assert registry.get_categories().outgoing[-1] == "Rent"
    assert "Rent" not in registry.get_categories().incoming


def test_rename_and_delete_by_index() -> None:
    registry = CategoryRegistry(MemoryConfigStore())

    assert registry.rename_category(FlowType.incoming, 0, "Wages")
    assert registry.rename_category(FlowType.incoming, 1, "Wages") is False
    assert registry.rename_category(FlowType.incoming, 99, "Bonus") is False
    assert registry.get_categories().incoming[0] == "Wages"

    assert registry.delete_category(FlowType.incoming, 0)
    assert registry.delete_category(FlowType.incoming, 99) is False
    assert "Wages" not in registry.get_categories().incoming


def test_labels_are_sorted_union() -> None:
    labels = CategoryRegistry(MemoryConfigStore()).labels()

    assert labels == sorted(set(DEFAULT_OUTGOING_CATEGORIES) | set(DEFAULT_INCOMING_CATEGORIES))
    assert labels.count("Other") == 1


def test_transfer_side_has_no_categories() -> None:
    registry = CategoryRegistry(MemoryConfigStore())

    with pytest.raises(ValueError):
        registry.add_category(FlowType.transfer, "Move")
