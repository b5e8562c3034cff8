import json
import logging
from dataclasses import dataclass, field

from config_store import CATEGORY_CONFIG_KEY, ConfigStore
from ledger import FlowType

logger = logging.getLogger(__name__)

DEFAULT_OUTGOING_CATEGORIES: tuple[str, ...] = (
    "Food",
    "Transport",
    "Bills",
    "Shopping",
    "Other",
)
DEFAULT_INCOMING_CATEGORIES: tuple[str, ...] = (
    "Salary",
    "Business",
    "Refund",
    "Gift",
    "Other",
)

_DEFAULTS = {
    FlowType.outgoing: DEFAULT_OUTGOING_CATEGORIES,
    FlowType.incoming: DEFAULT_INCOMING_CATEGORIES,
}


@dataclass
class CategoryConfig:
    outgoing: list[str] = field(default_factory=lambda: list(DEFAULT_OUTGOING_CATEGORIES))
    incoming: list[str] = field(default_factory=lambda: list(DEFAULT_INCOMING_CATEGORIES))

    def side(self, flow: FlowType) -> list[str]:
        if flow is FlowType.outgoing:
            return self.outgoing
        if flow is FlowType.incoming:
            return self.incoming
        raise ValueError(f"Categories exist only for pay and receive, not {flow.value}")


def _clean_side(value: object, flow: FlowType) -> list[str]:
    if isinstance(value, list):
        labels = [item for item in value if isinstance(item, str)]
        if labels:
            return labels
    return list(_DEFAULTS[flow])


class CategoryRegistry:
    """Two independent label lists, one per money direction.

    Each side falls back to its defaults on its own when the stored list is
    missing or empty. Deleting a label never retags existing transactions.
    """

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def get_categories(self) -> CategoryConfig:
        raw = self.store.get(CATEGORY_CONFIG_KEY)
        if not raw:
            return CategoryConfig()
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("category_config_unreadable: falling back to defaults")
            return CategoryConfig()
        if not isinstance(parsed, dict):
            return CategoryConfig()
        return CategoryConfig(
            outgoing=_clean_side(parsed.get(FlowType.outgoing.value), FlowType.outgoing),
            incoming=_clean_side(parsed.get(FlowType.incoming.value), FlowType.incoming),
        )

    def _save(self, config: CategoryConfig) -> None:
        payload = {
            FlowType.outgoing.value: config.outgoing or list(DEFAULT_OUTGOING_CATEGORIES),
            FlowType.incoming.value: config.incoming or list(DEFAULT_INCOMING_CATEGORIES),
        }
        self.store.set(CATEGORY_CONFIG_KEY, json.dumps(payload, ensure_ascii=False))

    def labels(self) -> list[str]:
        config = self.get_categories()
        return sorted(set(config.outgoing) | set(config.incoming))

    def add_category(self, flow: FlowType, label: str) -> bool:
        config = self.get_categories()
        labels = config.side(flow)
        clean = (label or "").strip()
        if not clean or clean in labels:
            return False
        labels.append(clean)
        self._save(config)
        return True

    def rename_category(self, flow: FlowType, index: int, new_label: str) -> bool:
        config = self.get_categories()
        labels = config.side(flow)
        if index < 0 or index >= len(labels):
            return False
        clean = (new_label or "").strip()
        if not clean:
            return False
        if any(existing == clean for i, existing in enumerate(labels) if i != index):
            return False
        labels[index] = clean
        self._save(config)
        return True

    def delete_category(self, flow: FlowType, index: int) -> bool:
        config = self.get_categories()
        labels = config.side(flow)
        if index < 0 or index >= len(labels):
            return False
        removed = labels.pop(index)
        self._save(config)
        logger.info(f"category_deleted: side={flow.value} label={removed}")
        return True
