"""
Item Resolver — raw scan value → candidate item or catalog suggestion.

Read-only. Item lookup tries an exact barcode match first, then an exact
serial number match. The catalog suggestion is a separate, weaker hint used
only when no item matched but the scan carried a GTIN.
"""

import uuid

from db.models import InventoryItem, ItemCatalog
from inventory.gs1 import DecodeResult
from inventory.repository import CatalogRepository, InventoryRepository


class ItemResolver:
    def __init__(self, items: InventoryRepository, catalog: CatalogRepository):
        self.items = items
        self.catalog = catalog

    async def find_candidate(self, facility_id: uuid.UUID, raw_value: str) -> InventoryItem | None:
        value = raw_value.strip()
        if not value:
            return None
        item = await self.items.find_by_barcode(facility_id, value)
        if item is None:
            item = await self.items.find_by_serial(facility_id, value)
        return item

    async def suggest_catalog(self, facility_id: uuid.UUID, decoded: DecodeResult) -> ItemCatalog | None:
        if decoded.parsed is None:
            return None
        return await self.catalog.find_by_gtin(facility_id, decoded.parsed.gtin)
