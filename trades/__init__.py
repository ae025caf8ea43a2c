"""Trades module for peer-to-peer coin barter.

This module handles the trade lifecycle:
- Initiation, cancellation and completion (TradeLedger)
- Offers and counter-offers with single-winner acceptance (OfferArbitrator)
- Two-sided shipment and receipt attestations (ShipmentTracker)
- Violation reports and their moderation (DisputeRegistrar)
"""
import logging
from typing import TYPE_CHECKING, Optional

from .disputes import DisputeRegistrar
from .errors import (
    DuplicateActiveTradeError,
    ForbiddenError,
    InvalidTransitionError,
    ItemNotFoundError,
    ItemNotOwnedError,
    ItemNotTradeableError,
    NotAParticipantError,
    NotFoundError,
    OfferAlreadyDecidedError,
    OfferNotFoundError,
    ReportAlreadyClosedError,
    ReportNotFoundError,
    SelfTradeError,
    ShipmentNotSentError,
    TradeConflictError,
    TradeDisputedError,
    TradeError,
    TradeNotFoundError,
)
from .ledger import TradeLedger
from .models import (
    OfferStatus,
    ParticipantRole,
    ReceiptResult,
    ReportStatus,
    ShipmentSide,
    Trade,
    TradeDetail,
    TradeOffer,
    TradeReport,
    TradeShipping,
    TradeStatus,
)
from .offers import OfferArbitrator
from .shipping import ShipmentTracker
from .store import TradeStore, TradeTransaction
from .store.memory import MemoryTradeStore
from .store.postgres import PostgresTradeStore

if TYPE_CHECKING:
    from asyncpg.pool import Pool
    from catalog import CoinCatalog

logger = logging.getLogger(__name__)


def create_store(backend: str, pool: Optional['Pool'] = None) -> TradeStore:
    """Build the trade store named by the store_backend setting.

    Args:
        backend: 'memory' or 'postgres'
        pool: Connection pool for the postgres backend. If not provided, the
              store gets the shared pool from the database module.
    """
    if backend == 'memory':
        logger.warning("Using in-memory trade store, trades will not survive a restart")
        return MemoryTradeStore()
    if backend == 'postgres':
        return PostgresTradeStore(pool)
    raise ValueError(f"Unknown trade store backend: {backend}")


class TradeManager:
    """Bundles the trade components over one store and catalog."""

    def __init__(self, store: TradeStore, catalog: 'CoinCatalog') -> None:
        self.store = store
        self.catalog = catalog
        self.ledger = TradeLedger(store, catalog)
        self.offers = OfferArbitrator(store, catalog)
        self.shipping = ShipmentTracker(store, self.ledger)
        self.disputes = DisputeRegistrar(store, self.ledger)

    async def close(self) -> None:
        await self.store.close()


__all__ = [
    'TradeManager',
    'TradeLedger',
    'OfferArbitrator',
    'ShipmentTracker',
    'DisputeRegistrar',
    'TradeStore',
    'TradeTransaction',
    'MemoryTradeStore',
    'PostgresTradeStore',
    'create_store',
    'OfferStatus',
    'ParticipantRole',
    'ReceiptResult',
    'ReportStatus',
    'ShipmentSide',
    'Trade',
    'TradeDetail',
    'TradeOffer',
    'TradeReport',
    'TradeShipping',
    'TradeStatus',
    'TradeError',
    'NotAParticipantError',
    'ForbiddenError',
    'NotFoundError',
    'TradeNotFoundError',
    'OfferNotFoundError',
    'ItemNotFoundError',
    'ReportNotFoundError',
    'InvalidTransitionError',
    'TradeDisputedError',
    'ShipmentNotSentError',
    'TradeConflictError',
    'OfferAlreadyDecidedError',
    'ReportAlreadyClosedError',
    'DuplicateActiveTradeError',
    'ItemNotTradeableError',
    'ItemNotOwnedError',
    'SelfTradeError',
]
