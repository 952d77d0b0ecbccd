# comanda/services/catalog.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from ..store import DocumentStore

COLLECTION = "menuItems"


@dataclass(frozen=True)
class CatalogEntry:
    menu_item_id: str
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None


class CatalogLookup(Protocol):
    def resolve(self, menu_item_id: str) -> Optional[CatalogEntry]: ...


class StoreCatalog:
    """
    Resolves menu items from ``menuItems/{id}``.

    Lookups are memoized on the instance; build one per request so a menu
    edit is seen by the next request.
    """

    def __init__(self, store: DocumentStore):
        self._store = store
        self._cache: Dict[str, Optional[CatalogEntry]] = {}

    def resolve(self, menu_item_id: str) -> Optional[CatalogEntry]:
        if not menu_item_id:
            return None
        if menu_item_id not in self._cache:
            data = self._store.get(f"{COLLECTION}/{menu_item_id}")
            self._cache[menu_item_id] = None if data is None else CatalogEntry(
                menu_item_id=menu_item_id,
                category_id=data.get("categoryId"),
                subcategory_id=data.get("subcategoryId"),
            )
        return self._cache[menu_item_id]
