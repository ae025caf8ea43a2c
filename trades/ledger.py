"""Trade ledger.

Creates trades and drives their outer lifecycle: cancellation, dispute and
completion. Every command runs in one unit of work that locks the trade row,
re-checks the status through the transition table and writes with a
compare-and-swap on the status it just read.
"""
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional, Tuple
from uuid import UUID

from .disputes import record_report
from .errors import (
    InvalidTransitionError,
    ItemNotTradeableError,
    NotAParticipantError,
    SelfTradeError,
    TradeConflictError,
    TradeError,
    TradeNotFoundError,
)
from .models import (
    ParticipantRole,
    Trade,
    TradeDetail,
    TradeShipping,
    TradeStatus,
)
from .state import NEGOTIABLE, ensure_transition
from .store import TradeStore, TradeTransaction, retry_on_conflict

if TYPE_CHECKING:
    from catalog import CoinCatalog

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def load_trade(tx: TradeTransaction, trade_id: UUID, user_id: str) -> Tuple[Trade, ParticipantRole]:
    """Lock a trade and resolve the acting user's role in it.

    Raises:
        TradeNotFoundError: If the trade does not exist
        NotAParticipantError: If user_id is neither initiator nor owner
    """
    trade = await tx.lock_trade(trade_id)
    if not trade:
        raise TradeNotFoundError(trade_id)
    role = trade.role_of(user_id)
    if role is None:
        raise NotAParticipantError(trade_id, user_id)
    return trade, role


async def move_trade(
    tx: TradeTransaction,
    trade: Trade,
    target: TradeStatus,
    action: str,
    now: datetime
) -> Trade:
    """Apply one status transition to a locked trade.

    Raises:
        InvalidTransitionError: If the move is not in the transition table
        TradeConflictError: If the stored status no longer matches trade.status
    """
    ensure_transition(trade, target, action)
    updated = await tx.update_trade_status(trade.id, trade.status, target, now)
    if not updated:
        raise TradeConflictError(trade.id, trade.status, action)
    return updated


class TradeLedger:
    """Aggregate root for trades."""

    def __init__(self, store: TradeStore, catalog: 'CoinCatalog') -> None:
        self.store = store
        self.catalog = catalog

    @retry_on_conflict
    async def initiate(self, initiator_id: str, item_id: UUID) -> Trade:
        """Open a trade on someone else's item.

        The trade and its empty shipping record are written together.

        Args:
            initiator_id: User asking for the item
            item_id: The listed item

        Returns:
            The new pending trade

        Raises:
            ItemNotFoundError: If the item does not exist
            ItemNotTradeableError: If the item is not open to trade
            SelfTradeError: If the initiator owns the item
            DuplicateActiveTradeError: If the initiator already has an active trade on it
        """
        try:
            item = await self.catalog.get(item_id)
            if not item.tradeable:
                raise ItemNotTradeableError(item_id)
            if item.owner_id == initiator_id:
                raise SelfTradeError(item_id)

            now = utcnow()
            async with self.store.transaction() as tx:
                trade = await tx.insert_trade(item_id, initiator_id, item.owner_id, now)
                await tx.insert_shipping(trade.id, now)

            logger.info(f"Trade {trade.id} initiated by {initiator_id} for item {item_id}")
            return trade

        except TradeError as e:
            logger.warning(f"Initiate refused for {initiator_id} on item {item_id}: {e}")
            raise

    @retry_on_conflict
    async def cancel(self, trade_id: UUID, user_id: str) -> Trade:
        """Cancel a trade.

        While negotiating only the initiator may withdraw; once accepted either
        participant may call the exchange off.

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If user_id is not a participant
            InvalidTransitionError: If the trade cannot be cancelled by this user now
        """
        try:
            now = utcnow()
            async with self.store.transaction() as tx:
                trade, role = await load_trade(tx, trade_id, user_id)
                if trade.status in NEGOTIABLE and role is not ParticipantRole.INITIATOR:
                    raise InvalidTransitionError(
                        trade.id, trade.status, 'cancel',
                        f"Only the initiator can cancel trade {trade.id} while it is {trade.status.value}"
                    )
                trade = await move_trade(tx, trade, TradeStatus.CANCELLED, 'cancel', now)

            logger.info(f"Trade {trade_id} cancelled by {user_id}")
            return trade

        except TradeError as e:
            logger.warning(f"Cancel refused for {user_id} on trade {trade_id}: {e}")
            raise

    @retry_on_conflict
    async def report(
        self,
        trade_id: UUID,
        reporter_id: str,
        reason: str,
        description: Optional[str] = None
    ) -> Trade:
        """File a report against the counterparty and freeze the trade as disputed.

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If reporter_id is not a participant
            TradeDisputedError: If the trade is already disputed
            InvalidTransitionError: If the trade is completed or cancelled
        """
        try:
            now = utcnow()
            async with self.store.transaction() as tx:
                trade, role = await load_trade(tx, trade_id, reporter_id)
                ensure_transition(trade, TradeStatus.DISPUTED, 'report')
                report = await record_report(tx, trade, role, reason, description, now)
                trade = await move_trade(tx, trade, TradeStatus.DISPUTED, 'report', now)

            logger.info(
                f"Trade {trade_id} disputed by {reporter_id} "
                f"(report {report.id} against {report.reported_user_id})"
            )
            return trade

        except TradeError as e:
            logger.warning(f"Report refused for {reporter_id} on trade {trade_id}: {e}")
            raise

    async def complete(
        self,
        tx: TradeTransaction,
        trade: Trade,
        shipping: TradeShipping,
        now: datetime
    ) -> Trade:
        """Complete a locked trade inside the caller's unit of work.

        Raises:
            InvalidTransitionError: If the trade is not accepted or a side has not received
        """
        if not shipping.both_received:
            raise InvalidTransitionError(
                trade.id, trade.status, 'complete',
                f"Trade {trade.id} cannot complete before both sides confirm receipt"
            )
        trade = await move_trade(tx, trade, TradeStatus.COMPLETED, 'complete', now)
        logger.info(f"Trade {trade.id} completed")
        return trade

    @retry_on_conflict
    async def mark_completed(self, trade_id: UUID) -> Trade:
        """Complete a trade whose shipments have both been received.

        Receipt confirmation already completes trades in the same unit of work;
        this entry point exists for reconciliation of trades left accepted.

        Raises:
            TradeNotFoundError: If the trade does not exist
            InvalidTransitionError: If the trade is not accepted or a side has not received
        """
        now = utcnow()
        async with self.store.transaction() as tx:
            trade = await tx.lock_trade(trade_id)
            if not trade:
                raise TradeNotFoundError(trade_id)
            shipping = await tx.lock_shipping(trade_id)
            if not shipping:
                raise InvalidTransitionError(trade.id, trade.status, 'complete')
            return await self.complete(tx, trade, shipping, now)

    @retry_on_conflict
    async def get_detail(self, trade_id: UUID, user_id: str) -> TradeDetail:
        """Trade with its offers and shipping record, for a participant.

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If user_id is not a participant
        """
        async with self.store.transaction() as tx:
            trade = await tx.get_trade(trade_id)
            if not trade:
                raise TradeNotFoundError(trade_id)
            if trade.role_of(user_id) is None:
                logger.warning(f"User {user_id} denied access to trade {trade_id}")
                raise NotAParticipantError(trade_id, user_id)
            offers = await tx.list_offers(trade_id)
            shipping = await tx.get_shipping(trade_id)

        if not shipping:
            # Every trade gets its shipping record at initiation
            logger.error(f"Trade {trade_id} has no shipping record")
            raise TradeNotFoundError(trade_id)
        return TradeDetail(trade=trade, offers=offers, shipping=shipping)

    @retry_on_conflict
    async def list_trades(
        self,
        user_id: str,
        role: Optional[ParticipantRole] = None,
        status: Optional[TradeStatus] = None
    ) -> List[Trade]:
        """Trades the user takes part in, most recently updated first."""
        async with self.store.transaction() as tx:
            return await tx.list_trades(user_id, role=role, status=status)


__all__ = ['TradeLedger', 'load_trade', 'move_trade', 'utcnow']
