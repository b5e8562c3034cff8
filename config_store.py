"""Key-value storage contract for registry configuration.

Values are JSON text. Readers treat anything they cannot parse as absent.
The database-backed implementation lives in ``services.SqlConfigStore``.
"""

from typing import Optional, Protocol


ACCOUNT_CONFIG_KEY = "account_config"
LEGACY_ACCOUNT_NAMES_KEY = "account_names"
CATEGORY_CONFIG_KEY = "categories"
REPORT_TEMPLATES_KEY = "report_templates"


class ConfigStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryConfigStore:
    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
