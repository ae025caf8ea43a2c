"""Trade persistence.

A ``TradeStore`` hands out units of work. Everything done through one
``TradeTransaction`` commits together when the ``async with`` block exits
cleanly and is rolled back when it raises, so a command either lands whole or
leaves the trade exactly as it was.

Backends:
- ``PostgresTradeStore``: asyncpg against CockroachDB/Postgres
- ``MemoryTradeStore``: process-local, for development and tests

Commands that open a unit of work are wrapped in ``retry_on_conflict``: when a
backend aborts the unit of work because a concurrent writer got there first,
the whole command runs again and re-checks the trade as that writer left it.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, List, Optional
from uuid import UUID

import backoff

from ..errors import TradeConflictError
from ..models import (
    OfferStatus,
    ParticipantRole,
    Trade,
    TradeOffer,
    TradeReport,
    TradeShipping,
    TradeStatus,
)

# Attempts per command before a TradeConflictError reaches the caller
CONFLICT_RETRIES = 4

retry_on_conflict = backoff.on_exception(
    backoff.expo,
    TradeConflictError,
    max_tries=CONFLICT_RETRIES,
    factor=0.05
)


class TradeTransaction(ABC):
    """Operations available inside one unit of work.

    ``lock_*`` reads return the latest committed row and hold it until the unit
    of work ends. ``update_*_status`` calls are compare-and-swap: they only write
    when the row still has the expected status and return None otherwise.
    """

    # Trades

    @abstractmethod
    async def lock_trade(self, trade_id: UUID) -> Optional[Trade]:
        ...

    @abstractmethod
    async def get_trade(self, trade_id: UUID) -> Optional[Trade]:
        ...

    @abstractmethod
    async def find_active_trade(self, initiator_id: str, item_id: UUID) -> Optional[Trade]:
        ...

    @abstractmethod
    async def insert_trade(
        self,
        item_id: UUID,
        initiator_id: str,
        item_owner_id: str,
        now: datetime
    ) -> Trade:
        """Insert a pending trade.

        Raises:
            DuplicateActiveTradeError: If an active trade exists for the pair
        """

    @abstractmethod
    async def update_trade_status(
        self,
        trade_id: UUID,
        expected: TradeStatus,
        new: TradeStatus,
        now: datetime
    ) -> Optional[Trade]:
        ...

    @abstractmethod
    async def list_trades(
        self,
        user_id: str,
        role: Optional[ParticipantRole] = None,
        status: Optional[TradeStatus] = None
    ) -> List[Trade]:
        """Trades the user takes part in, most recently updated first."""

    # Shipping

    @abstractmethod
    async def insert_shipping(self, trade_id: UUID, now: datetime) -> TradeShipping:
        ...

    @abstractmethod
    async def lock_shipping(self, trade_id: UUID) -> Optional[TradeShipping]:
        ...

    @abstractmethod
    async def get_shipping(self, trade_id: UUID) -> Optional[TradeShipping]:
        ...

    @abstractmethod
    async def save_shipping(self, shipping: TradeShipping) -> TradeShipping:
        ...

    # Offers

    @abstractmethod
    async def count_offers(self, trade_id: UUID) -> int:
        ...

    @abstractmethod
    async def list_offers(self, trade_id: UUID) -> List[TradeOffer]:
        """Offers on a trade in creation order."""

    @abstractmethod
    async def get_offer(self, offer_id: UUID) -> Optional[TradeOffer]:
        ...

    @abstractmethod
    async def insert_offer(
        self,
        trade_id: UUID,
        offerer_id: str,
        offered_item_id: Optional[UUID],
        message: Optional[str],
        is_counter_offer: bool,
        now: datetime
    ) -> TradeOffer:
        ...

    @abstractmethod
    async def update_offer_status(
        self,
        offer_id: UUID,
        expected: OfferStatus,
        new: OfferStatus,
        now: datetime
    ) -> Optional[TradeOffer]:
        ...

    @abstractmethod
    async def reject_pending_offers(
        self,
        trade_id: UUID,
        except_offer_id: UUID,
        now: datetime
    ) -> int:
        """Reject every other pending offer on the trade. Returns how many changed."""

    # Reports

    @abstractmethod
    async def insert_report(
        self,
        trade_id: UUID,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        description: Optional[str],
        now: datetime
    ) -> TradeReport:
        ...

    @abstractmethod
    async def list_reports(self, trade_id: UUID) -> List[TradeReport]:
        ...

    @abstractmethod
    async def get_report(self, report_id: UUID) -> Optional[TradeReport]:
        ...

    @abstractmethod
    async def close_report(
        self,
        report_id: UUID,
        reviewed_by: str,
        review_notes: Optional[str],
        now: datetime
    ) -> Optional[TradeReport]:
        """Close an open report. Returns None if it was not open."""


class TradeStore(ABC):
    """Source of units of work over the trade tables."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[TradeTransaction]:
        """Open a unit of work.

        Raises:
            StoreUnavailableError: If the store cannot be reached or the commit fails
            TradeConflictError: If a concurrent writer forced this unit of work to abort
        """

    async def close(self) -> None:
        """Release backend resources."""


__all__ = ['TradeStore', 'TradeTransaction', 'retry_on_conflict', 'CONFLICT_RETRIES']
