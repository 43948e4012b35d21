# src/taskflow/storage/preferences.py

from __future__ import annotations

from ..core.ports import KeyValueCache
from ..tasks.task_views import SortOrder

SORT_BY_KEY = "sortBy"
DARK_MODE_KEY = "darkMode"


class Preferences:
    """Typed view over the user preferences kept in the local cache."""

    def __init__(self, cache: KeyValueCache) -> None:
        self._cache = cache

    @property
    def sort_by(self) -> SortOrder:
        return SortOrder.parse(self._cache.get(SORT_BY_KEY, SortOrder.DUE_DATE.value))

    @sort_by.setter
    def sort_by(self, value: SortOrder | str) -> None:
        self._cache.set(SORT_BY_KEY, SortOrder.parse(value).value)

    @property
    def dark_mode(self) -> bool:
        raw = self._cache.get(DARK_MODE_KEY, False)
        return raw if isinstance(raw, bool) else False

    @dark_mode.setter
    def dark_mode(self, value: bool) -> None:
        self._cache.set(DARK_MODE_KEY, bool(value))
