"""Coin catalog collaborator.

The trade core only needs three facts about an item: who owns it, whether it is
open to trade, and whether it exists at all. Profile, media and social data for
coins live elsewhere.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional
from uuid import UUID

from asyncpg.pool import Pool
from asyncpg.exceptions import PostgresError
from pydantic import BaseModel, ConfigDict

from database import get_pool
from database.exceptions import StoreUnavailableError
from trades.errors import ItemNotFoundError

logger = logging.getLogger(__name__)

TRADE_STATUS_OPEN = 'open_to_trade'
TRADE_STATUS_CLOSED = 'not_for_trade'


class CatalogItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    owner_id: str
    tradeable: bool


class CoinCatalog(ABC):
    """Read access to item ownership and trade flags."""

    @abstractmethod
    async def get(self, item_id: UUID) -> CatalogItem:
        """Look up an item.

        Raises:
            ItemNotFoundError: If the item does not exist
            StoreUnavailableError: If the catalog cannot be reached
        """

    async def is_owned_by(self, item_id: UUID, user_id: str) -> bool:
        try:
            item = await self.get(item_id)
        except ItemNotFoundError:
            return False
        return item.owner_id == user_id


class PostgresCoinCatalog(CoinCatalog):
    """Catalog backed by the coins table."""

    def __init__(self, pool: Optional[Pool] = None) -> None:
        """Initialize the catalog.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get(self, item_id: UUID) -> CatalogItem:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    'SELECT id, user_id, trade_status FROM coins WHERE id = $1',
                    item_id
                )
        except (PostgresError, OSError) as e:
            logger.error(f"Error reading coin {item_id}: {e}")
            raise StoreUnavailableError(f"Coin catalog unavailable: {e}")

        if not row:
            raise ItemNotFoundError(item_id)
        return CatalogItem(
            id=row['id'],
            owner_id=row['user_id'],
            tradeable=row['trade_status'] == TRADE_STATUS_OPEN
        )


class MemoryCoinCatalog(CoinCatalog):
    """Catalog kept in process memory, for development and tests."""

    def __init__(self) -> None:
        self.items: Dict[UUID, CatalogItem] = {}

    def add_item(
        self,
        owner_id: str,
        tradeable: bool = True,
        item_id: Optional[UUID] = None
    ) -> CatalogItem:
        item = CatalogItem(id=item_id or uuid.uuid4(), owner_id=owner_id, tradeable=tradeable)
        self.items[item.id] = item
        return item

    async def get(self, item_id: UUID) -> CatalogItem:
        item = self.items.get(item_id)
        if not item:
            raise ItemNotFoundError(item_id)
        return item


__all__ = [
    'CatalogItem',
    'CoinCatalog',
    'PostgresCoinCatalog',
    'MemoryCoinCatalog',
    'TRADE_STATUS_OPEN',
    'TRADE_STATUS_CLOSED',
]
