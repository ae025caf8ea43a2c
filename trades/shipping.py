"""Shipment tracking.

Each participant attests that they shipped their item and that they received the
counterparty's. Attestations are trust based and cannot be withdrawn. The second
receipt completes the trade in the same unit of work that records it.
"""
import logging
from typing import Optional
from uuid import UUID

from .errors import ShipmentNotSentError, TradeError
from .ledger import TradeLedger, load_trade, utcnow
from .models import ReceiptResult, TradeShipping, TradeStatus
from .state import ensure_status
from .store import TradeStore, TradeTransaction, retry_on_conflict

logger = logging.getLogger(__name__)

FULFILLING = (TradeStatus.ACCEPTED,)


async def _lock_shipping(tx: TradeTransaction, trade_id: UUID) -> TradeShipping:
    shipping = await tx.lock_shipping(trade_id)
    if not shipping:
        logger.warning(f"Trade {trade_id} had no shipping record, creating one")
        shipping = await tx.insert_shipping(trade_id, utcnow())
    return shipping


class ShipmentTracker:
    """Records both sides' shipment and receipt attestations."""

    def __init__(self, store: TradeStore, ledger: TradeLedger) -> None:
        self.store = store
        self.ledger = ledger

    @retry_on_conflict
    async def mark_shipped(
        self,
        trade_id: UUID,
        user_id: str,
        tracking_number: Optional[str] = None
    ) -> TradeShipping:
        """Record that the acting participant shipped their item.

        Safe to repeat: a repeat call only replaces the tracking number, when one
        is given, and shipped_at keeps its first value.

        Args:
            trade_id: Accepted trade
            user_id: Participant who shipped
            tracking_number: Optional carrier tracking number

        Returns:
            The updated shipping record

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If user_id is not a participant
            TradeDisputedError: If the trade is disputed
            InvalidTransitionError: If the trade is not accepted
        """
        try:
            now = utcnow()
            async with self.store.transaction() as tx:
                trade, role = await load_trade(tx, trade_id, user_id)
                ensure_status(trade, FULFILLING, 'ship')
                shipping = await _lock_shipping(tx, trade.id)

                side = shipping.side(role)
                if not side.shipped:
                    side = side.model_copy(update={
                        'shipped': True,
                        'shipped_at': now,
                        'tracking_number': tracking_number
                    })
                elif tracking_number is not None and tracking_number != side.tracking_number:
                    side = side.model_copy(update={'tracking_number': tracking_number})
                else:
                    logger.debug(f"Repeat ship attestation on trade {trade_id} by {user_id}")
                    return shipping

                shipping = await tx.save_shipping(shipping.with_side(role, side, now))

            logger.info(f"Trade {trade_id}: {role.value} {user_id} marked shipped")
            return shipping

        except TradeError as e:
            logger.warning(f"Ship refused for {user_id} on trade {trade_id}: {e}")
            raise

    @retry_on_conflict
    async def mark_received(self, trade_id: UUID, user_id: str) -> ReceiptResult:
        """Record that the acting participant received the counterparty's item.

        When this makes both sides received, the trade completes atomically
        with it.

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If user_id is not a participant
            TradeDisputedError: If the trade is disputed
            InvalidTransitionError: If the trade is not accepted
            ShipmentNotSentError: If the counterparty has not shipped yet
        """
        try:
            now = utcnow()
            async with self.store.transaction() as tx:
                trade, role = await load_trade(tx, trade_id, user_id)
                ensure_status(trade, FULFILLING, 'confirm receipt on')
                shipping = await _lock_shipping(tx, trade.id)

                if shipping.side(role.other).shipped_at is None:
                    raise ShipmentNotSentError(
                        trade.id, trade.status, 'confirm receipt on',
                        f"The {role.other.value} has not shipped on trade {trade.id} yet"
                    )

                side = shipping.side(role)
                if not side.received:
                    side = side.model_copy(update={'received': True, 'received_at': now})
                    shipping = await tx.save_shipping(shipping.with_side(role, side, now))

                completed = False
                if shipping.both_received:
                    await self.ledger.complete(tx, trade, shipping, now)
                    completed = True

            logger.info(f"Trade {trade_id}: {role.value} {user_id} marked received")
            return ReceiptResult(shipping=shipping, trade_completed=completed)

        except TradeError as e:
            logger.warning(f"Receive refused for {user_id} on trade {trade_id}: {e}")
            raise
