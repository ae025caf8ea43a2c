"""In-process trade store.

Units of work run one at a time behind a single asyncio.Lock, which makes every
command linearizable. Writes go straight into the tables; a snapshot taken when
the unit of work opens is restored if it raises.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional
from uuid import UUID

from ..errors import DuplicateActiveTradeError
from ..models import (
    OfferStatus,
    ParticipantRole,
    ReportStatus,
    Trade,
    TradeOffer,
    TradeReport,
    TradeShipping,
    TradeStatus,
)
from ..state import ACTIVE
from . import TradeStore, TradeTransaction

logger = logging.getLogger(__name__)


class _Tables:
    def __init__(self) -> None:
        self.trades: Dict[UUID, Trade] = {}
        self.offers: Dict[UUID, TradeOffer] = {}
        self.shipping: Dict[UUID, TradeShipping] = {}
        self.reports: Dict[UUID, TradeReport] = {}


class MemoryTradeTransaction(TradeTransaction):

    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def lock_trade(self, trade_id: UUID) -> Optional[Trade]:
        return self._t.trades.get(trade_id)

    async def get_trade(self, trade_id: UUID) -> Optional[Trade]:
        return self._t.trades.get(trade_id)

    async def find_active_trade(self, initiator_id: str, item_id: UUID) -> Optional[Trade]:
        for trade in self._t.trades.values():
            if (trade.initiator_id == initiator_id and trade.item_id == item_id
                    and trade.status in ACTIVE):
                return trade
        return None

    async def insert_trade(
        self,
        item_id: UUID,
        initiator_id: str,
        item_owner_id: str,
        now: datetime
    ) -> Trade:
        existing = await self.find_active_trade(initiator_id, item_id)
        if existing:
            raise DuplicateActiveTradeError(existing.id)
        trade = Trade(
            id=uuid.uuid4(),
            item_id=item_id,
            initiator_id=initiator_id,
            item_owner_id=item_owner_id,
            status=TradeStatus.PENDING,
            created_at=now,
            updated_at=now
        )
        self._t.trades[trade.id] = trade
        return trade

    async def update_trade_status(
        self,
        trade_id: UUID,
        expected: TradeStatus,
        new: TradeStatus,
        now: datetime
    ) -> Optional[Trade]:
        trade = self._t.trades.get(trade_id)
        if not trade or trade.status is not expected:
            return None
        trade = trade.model_copy(update={'status': new, 'updated_at': now})
        self._t.trades[trade_id] = trade
        return trade

    async def list_trades(
        self,
        user_id: str,
        role: Optional[ParticipantRole] = None,
        status: Optional[TradeStatus] = None
    ) -> List[Trade]:
        trades = []
        for trade in self._t.trades.values():
            trade_role = trade.role_of(user_id)
            if trade_role is None or (role and trade_role is not role):
                continue
            if status and trade.status is not status:
                continue
            trades.append(trade)
        return sorted(trades, key=lambda t: t.updated_at, reverse=True)

    async def insert_shipping(self, trade_id: UUID, now: datetime) -> TradeShipping:
        shipping = TradeShipping(trade_id=trade_id, created_at=now, updated_at=now)
        self._t.shipping[trade_id] = shipping
        return shipping

    async def lock_shipping(self, trade_id: UUID) -> Optional[TradeShipping]:
        return self._t.shipping.get(trade_id)

    async def get_shipping(self, trade_id: UUID) -> Optional[TradeShipping]:
        return self._t.shipping.get(trade_id)

    async def save_shipping(self, shipping: TradeShipping) -> TradeShipping:
        self._t.shipping[shipping.trade_id] = shipping
        return shipping

    async def count_offers(self, trade_id: UUID) -> int:
        return sum(1 for offer in self._t.offers.values() if offer.trade_id == trade_id)

    async def list_offers(self, trade_id: UUID) -> List[TradeOffer]:
        # dicts keep insertion order, which is creation order
        return [offer for offer in self._t.offers.values() if offer.trade_id == trade_id]

    async def get_offer(self, offer_id: UUID) -> Optional[TradeOffer]:
        return self._t.offers.get(offer_id)

    async def insert_offer(
        self,
        trade_id: UUID,
        offerer_id: str,
        offered_item_id: Optional[UUID],
        message: Optional[str],
        is_counter_offer: bool,
        now: datetime
    ) -> TradeOffer:
        offer = TradeOffer(
            id=uuid.uuid4(),
            trade_id=trade_id,
            offerer_id=offerer_id,
            offered_item_id=offered_item_id,
            message=message,
            is_counter_offer=is_counter_offer,
            status=OfferStatus.PENDING,
            created_at=now,
            updated_at=now
        )
        self._t.offers[offer.id] = offer
        return offer

    async def update_offer_status(
        self,
        offer_id: UUID,
        expected: OfferStatus,
        new: OfferStatus,
        now: datetime
    ) -> Optional[TradeOffer]:
        offer = self._t.offers.get(offer_id)
        if not offer or offer.status is not expected:
            return None
        offer = offer.model_copy(update={'status': new, 'updated_at': now})
        self._t.offers[offer_id] = offer
        return offer

    async def reject_pending_offers(
        self,
        trade_id: UUID,
        except_offer_id: UUID,
        now: datetime
    ) -> int:
        rejected = 0
        for offer in list(self._t.offers.values()):
            if (offer.trade_id == trade_id and offer.id != except_offer_id
                    and offer.status is OfferStatus.PENDING):
                self._t.offers[offer.id] = offer.model_copy(
                    update={'status': OfferStatus.REJECTED, 'updated_at': now}
                )
                rejected += 1
        return rejected

    async def insert_report(
        self,
        trade_id: UUID,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        description: Optional[str],
        now: datetime
    ) -> TradeReport:
        report = TradeReport(
            id=uuid.uuid4(),
            trade_id=trade_id,
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            reason=reason,
            description=description,
            created_at=now,
            updated_at=now
        )
        self._t.reports[report.id] = report
        return report

    async def list_reports(self, trade_id: UUID) -> List[TradeReport]:
        return [report for report in self._t.reports.values() if report.trade_id == trade_id]

    async def get_report(self, report_id: UUID) -> Optional[TradeReport]:
        return self._t.reports.get(report_id)

    async def close_report(
        self,
        report_id: UUID,
        reviewed_by: str,
        review_notes: Optional[str],
        now: datetime
    ) -> Optional[TradeReport]:
        report = self._t.reports.get(report_id)
        if not report or report.status is not ReportStatus.OPEN:
            return None
        report = report.model_copy(update={
            'status': ReportStatus.CLOSED,
            'reviewed_by': reviewed_by,
            'review_notes': review_notes,
            'updated_at': now
        })
        self._t.reports[report_id] = report
        return report


class MemoryTradeStore(TradeStore):
    """Trade store kept in process memory."""

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTradeTransaction]:
        async with self._lock:
            snapshot = {name: dict(table) for name, table in vars(self._tables).items()}
            try:
                yield MemoryTradeTransaction(self._tables)
            except BaseException:
                # Models are immutable, so restoring the dicts restores every row
                self._tables.__dict__.update(snapshot)
                logger.debug("Rolled back in-memory unit of work")
                raise
