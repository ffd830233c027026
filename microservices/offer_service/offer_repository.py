"""
Offer Repository

Data access layer for offers, line items and status history using
PostgresClientWrapper (asyncpg).
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from core.postgres_client import PostgresClientWrapper

from .models import (
    Offer,
    OfferFilter,
    OfferItem,
    OfferStatistics,
    OfferStatus,
    OfferStatusHistory,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

OFFER_COLUMNS = (
    "offer_id", "sequence_number", "offer_number", "title", "description", "status",
    "customer_name", "customer_email", "customer_phone", "customer_address", "currency_code",
    "subtotal", "tax_amount", "discount_amount", "total_amount", "valid_until",
    "accepted_at", "completed_at", "cancelled_at", "has_reservations", "reservation_expires_at",
    "internal_notes", "customer_notes", "created_by", "assigned_to", "created_at", "updated_at",
)

ITEM_COLUMNS = (
    "item_id", "offer_id", "item_type", "product_id", "variant_id", "service_id", "sku",
    "title", "description", "variant_title", "quantity", "unit", "unit_price",
    "discount_percentage", "discount_amount", "tax_rate", "total_price", "manage_inventory",
    "reservation_id", "sort_order", "created_at", "updated_at",
)

HISTORY_COLUMNS = (
    "history_id", "offer_id", "previous_status", "new_status", "event_type",
    "event_description", "changed_by", "system_change", "inventory_impact", "metadata", "created_at",
)

# Columns callers may change through update_offer / update_item
UPDATABLE_OFFER_COLUMNS = frozenset(OFFER_COLUMNS) - {"offer_id", "sequence_number", "offer_number", "created_at"}
UPDATABLE_ITEM_COLUMNS = frozenset(ITEM_COLUMNS) - {"item_id", "offer_id", "created_at"}

# Statuses whose value counts towards the pipeline total
VALUE_STATUSES = (OfferStatus.ACTIVE, OfferStatus.ACCEPTED, OfferStatus.COMPLETED)


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _insert_sql(table: str, columns: Tuple[str, ...]) -> str:
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *"


class OfferRepository:
    """
    Repository for offer data operations

    Handles all database operations for offers using PostgresClientWrapper.
    """

    def __init__(self, db: Optional[PostgresClientWrapper] = None):
        """Initialize Offer Repository with a PostgreSQL client"""
        self.db = db or PostgresClientWrapper("offer_service")

        self.schema = "offers"
        self.offers_table = f"{self.schema}.offers"
        self.items_table = f"{self.schema}.offer_items"
        self.history_table = f"{self.schema}.offer_status_history"
        self.sequence = f"{self.schema}.offer_number_seq"

        logger.info("OfferRepository initialized with PostgresClientWrapper")

    async def ensure_schema(self) -> None:
        """Apply the bundled SQL migrations (idempotent)"""
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            await self.db.execute(path.read_text())
            logger.info(f"Applied migration {path.name}")

    # ====================
    # Offers
    # ====================

    async def next_sequence_number(self) -> int:
        row = await self.db.query_row(f"SELECT nextval('{self.sequence}') AS value")
        return int(row["value"])

    async def create_offer(self, offer: Offer) -> Offer:
        """Insert offer and items in one transaction"""
        try:
            async with self.db.transaction() as tx:
                await tx.query_row(
                    _insert_sql(self.offers_table, OFFER_COLUMNS),
                    [_db_value(getattr(offer, c)) for c in OFFER_COLUMNS],
                )
                for item in offer.items:
                    await tx.query_row(
                        _insert_sql(self.items_table, ITEM_COLUMNS),
                        [_db_value(getattr(item, c)) for c in ITEM_COLUMNS],
                    )
        except Exception as e:
            logger.error(f"Failed to create offer {offer.offer_number}: {e}")
            raise

        return await self.get_offer(offer.offer_id)

    async def get_offer(self, offer_id: str) -> Optional[Offer]:
        """Get offer by ID, including items"""
        row = await self.db.query_row(f"SELECT * FROM {self.offers_table} WHERE offer_id = $1", [offer_id])
        if not row:
            return None
        items = await self.get_items(offer_id)
        return self._row_to_offer(row, items)

    def _filter_clause(self, filters: OfferFilter) -> Tuple[str, List[Any]]:
        conditions: List[str] = []
        params: List[Any] = []

        if filters.status:
            params.append(filters.status.value)
            conditions.append(f"status = ${len(params)}")
        if filters.customer_email:
            params.append(filters.customer_email)
            conditions.append(f"customer_email = ${len(params)}")
        if filters.has_reservations is not None:
            params.append(filters.has_reservations)
            conditions.append(f"has_reservations = ${len(params)}")
        if filters.search:
            params.append(f"%{filters.search}%")
            conditions.append(
                f"(title ILIKE ${len(params)} OR offer_number ILIKE ${len(params)} "
                f"OR customer_name ILIKE ${len(params)})"
            )

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    async def list_offers(self, filters: OfferFilter) -> List[Offer]:
        where, params = self._filter_clause(filters)
        params = params + [filters.limit, filters.offset]
        rows = await self.db.query(
            f"SELECT * FROM {self.offers_table} {where} "
            f"ORDER BY created_at DESC LIMIT ${len(params) - 1} OFFSET ${len(params)}",
            params,
        )
        return [self._row_to_offer(row, []) for row in rows]

    async def count_offers(self, filters: OfferFilter) -> int:
        where, params = self._filter_clause(filters)
        row = await self.db.query_row(f"SELECT COUNT(*) AS count FROM {self.offers_table} {where}", params)
        return int(row["count"]) if row else 0

    async def update_offer(self, offer_id: str, fields: Dict[str, Any]) -> Optional[Offer]:
        unknown = set(fields) - UPDATABLE_OFFER_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update offer columns: {sorted(unknown)}")

        fields = {**fields, "updated_at": fields.get("updated_at") or datetime.now(timezone.utc)}
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(fields, start=2))
        params = [offer_id] + [_db_value(v) for v in fields.values()]

        count = await self.db.execute(
            f"UPDATE {self.offers_table} SET {assignments} WHERE offer_id = $1", params
        )
        if not count:
            return None
        return await self.get_offer(offer_id)

    async def delete_offer(self, offer_id: str) -> bool:
        # Items and history cascade
        count = await self.db.execute(f"DELETE FROM {self.offers_table} WHERE offer_id = $1", [offer_id])
        return count > 0

    # ====================
    # Items
    # ====================

    async def get_items(self, offer_id: str) -> List[OfferItem]:
        rows = await self.db.query(
            f"SELECT * FROM {self.items_table} WHERE offer_id = $1 ORDER BY sort_order, created_at",
            [offer_id],
        )
        return [OfferItem(**row) for row in rows]

    async def add_item(self, item: OfferItem) -> OfferItem:
        row = await self.db.query_row(
            _insert_sql(self.items_table, ITEM_COLUMNS),
            [_db_value(getattr(item, c)) for c in ITEM_COLUMNS],
        )
        return OfferItem(**row)

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[OfferItem]:
        unknown = set(fields) - UPDATABLE_ITEM_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update item columns: {sorted(unknown)}")

        fields = {**fields, "updated_at": fields.get("updated_at") or datetime.now(timezone.utc)}
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(fields, start=2))
        row = await self.db.query_row(
            f"UPDATE {self.items_table} SET {assignments} WHERE item_id = $1 RETURNING *",
            [item_id] + [_db_value(v) for v in fields.values()],
        )
        return OfferItem(**row) if row else None

    async def delete_item(self, item_id: str) -> bool:
        count = await self.db.execute(f"DELETE FROM {self.items_table} WHERE item_id = $1", [item_id])
        return count > 0

    async def set_item_reservation(self, item_id: str, reservation_id: Optional[str]) -> bool:
        count = await self.db.execute(
            f"UPDATE {self.items_table} SET reservation_id = $2, updated_at = NOW() WHERE item_id = $1",
            [item_id, reservation_id],
        )
        return count > 0

    # ====================
    # History
    # ====================

    async def add_history(self, entry: OfferStatusHistory) -> OfferStatusHistory:
        row = await self.db.query_row(
            _insert_sql(self.history_table, HISTORY_COLUMNS),
            [_db_value(getattr(entry, c)) for c in HISTORY_COLUMNS],
        )
        return OfferStatusHistory(**row)

    async def get_history(self, offer_id: str) -> List[OfferStatusHistory]:
        rows = await self.db.query(
            f"SELECT * FROM {self.history_table} WHERE offer_id = $1 ORDER BY created_at, history_id",
            [offer_id],
        )
        return [OfferStatusHistory(**row) for row in rows]

    # ====================
    # Statistics
    # ====================

    async def get_statistics(self) -> OfferStatistics:
        rows = await self.db.query(
            f"SELECT status, COUNT(*) AS count, COALESCE(SUM(total_amount), 0) AS value "
            f"FROM {self.offers_table} GROUP BY status"
        )

        by_status = {row["status"]: int(row["count"]) for row in rows}
        value_by_status = {row["status"]: int(row["value"]) for row in rows}
        counted = [s.value for s in VALUE_STATUSES]
        total_value = sum(v for status, v in value_by_status.items() if status in counted)
        counted_offers = sum(c for status, c in by_status.items() if status in counted)

        return OfferStatistics(
            total_offers=sum(by_status.values()),
            offers_by_status=by_status,
            value_by_status=value_by_status,
            total_value=total_value,
            average_value=total_value // counted_offers if counted_offers else 0,
        )

    def _row_to_offer(self, row: Dict[str, Any], items: List[OfferItem]) -> Offer:
        return Offer(**row, items=items)
