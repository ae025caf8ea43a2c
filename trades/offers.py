"""Offer arbitration.

Offers compete for a single trade. Accepting one is the critical section of the
whole system: the winner, its rejected siblings and the trade's move to accepted
are written in one unit of work, under the trade row lock, with compare-and-swap
on both the trade and the offer status. Of two racing accepts exactly one
commits; the other, run again if its backend aborted it, sees a decided trade
and gets OfferAlreadyDecidedError.
"""
import logging
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from .errors import (
    ForbiddenError,
    ItemNotOwnedError,
    OfferAlreadyDecidedError,
    OfferNotFoundError,
    TradeError,
)
from .ledger import load_trade, move_trade, utcnow
from .models import OfferStatus, ParticipantRole, Trade, TradeOffer, TradeStatus
from .state import NEGOTIABLE, ensure_status
from .store import TradeStore, TradeTransaction, retry_on_conflict

if TYPE_CHECKING:
    from catalog import CoinCatalog

logger = logging.getLogger(__name__)


async def _load_offer(tx: TradeTransaction, trade: Trade, offer_id: UUID) -> TradeOffer:
    offer = await tx.get_offer(offer_id)
    if not offer or offer.trade_id != trade.id:
        raise OfferNotFoundError(offer_id, trade.id)
    return offer


class OfferArbitrator:
    """Creates, accepts and rejects offers on trades."""

    def __init__(self, store: TradeStore, catalog: 'CoinCatalog') -> None:
        self.store = store
        self.catalog = catalog

    @retry_on_conflict
    async def propose(
        self,
        trade_id: UUID,
        offerer_id: str,
        offered_item_id: Optional[UUID] = None,
        message: Optional[str] = None
    ) -> TradeOffer:
        """Attach an offer to a negotiable trade.

        The first offer on a trade is the opening offer; every later one is a
        counter-offer. A pending trade becomes countered on its first offer.

        Args:
            trade_id: Trade to offer on
            offerer_id: Participant making the offer
            offered_item_id: Item offered in exchange, None for an open slot
            message: Optional note to the counterparty

        Returns:
            The new pending offer

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If offerer_id is not a participant
            InvalidTransitionError: If the trade is no longer negotiable
            ItemNotFoundError: If offered_item_id does not exist
            ItemNotOwnedError: If offered_item_id belongs to someone else
        """
        try:
            # Catalog reads stay outside the unit of work, which holds a pool connection
            item = None
            if offered_item_id is not None:
                item = await self.catalog.get(offered_item_id)

            now = utcnow()
            async with self.store.transaction() as tx:
                trade, _ = await load_trade(tx, trade_id, offerer_id)
                ensure_status(trade, NEGOTIABLE, 'propose an offer on')

                if item is not None and item.owner_id != offerer_id:
                    raise ItemNotOwnedError(offered_item_id, offerer_id)

                is_counter_offer = await tx.count_offers(trade.id) > 0
                offer = await tx.insert_offer(
                    trade.id,
                    offerer_id,
                    offered_item_id,
                    message,
                    is_counter_offer,
                    now
                )
                if trade.status is TradeStatus.PENDING:
                    await move_trade(tx, trade, TradeStatus.COUNTERED, 'propose an offer on', now)

            logger.info(
                f"Offer {offer.id} proposed on trade {trade_id} by {offerer_id} "
                f"(counter={is_counter_offer})"
            )
            return offer

        except TradeError as e:
            logger.warning(f"Offer refused for {offerer_id} on trade {trade_id}: {e}")
            raise

    @retry_on_conflict
    async def accept(self, trade_id: UUID, offer_id: UUID, user_id: str) -> Trade:
        """Accept one pending offer and reject every other pending offer.

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If user_id is not a participant
            ForbiddenError: If user_id is not the item owner
            OfferNotFoundError: If the offer is not on this trade
            OfferAlreadyDecidedError: If the offer or the trade was already decided
            InvalidTransitionError: If the trade is cancelled, completed or disputed
        """
        try:
            now = utcnow()
            async with self.store.transaction() as tx:
                trade, role = await load_trade(tx, trade_id, user_id)
                if role is not ParticipantRole.OWNER:
                    raise ForbiddenError(f"Only the item owner can accept offers on trade {trade_id}")

                offer = await _load_offer(tx, trade, offer_id)
                if trade.status is TradeStatus.ACCEPTED:
                    raise OfferAlreadyDecidedError(offer_id, offer.status)
                ensure_status(trade, NEGOTIABLE, 'accept an offer on')
                if offer.status is not OfferStatus.PENDING:
                    raise OfferAlreadyDecidedError(offer_id, offer.status)

                trade = await move_trade(tx, trade, TradeStatus.ACCEPTED, 'accept an offer on', now)
                accepted = await tx.update_offer_status(
                    offer_id, OfferStatus.PENDING, OfferStatus.ACCEPTED, now
                )
                if not accepted:
                    raise OfferAlreadyDecidedError(offer_id, OfferStatus.ACCEPTED)
                rejected = await tx.reject_pending_offers(trade.id, offer_id, now)

            logger.info(
                f"Offer {offer_id} accepted on trade {trade_id} by {user_id}, "
                f"{rejected} competing offer(s) rejected"
            )
            return trade

        except TradeError as e:
            logger.warning(f"Accept refused for {user_id} on offer {offer_id}: {e}")
            raise

    @retry_on_conflict
    async def reject(self, trade_id: UUID, offer_id: UUID, user_id: str) -> TradeOffer:
        """Reject one pending offer. The trade and other offers are untouched.

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotAParticipantError: If user_id is not a participant
            ForbiddenError: If user_id is not the item owner
            InvalidTransitionError: If the trade is no longer negotiable
            OfferNotFoundError: If the offer is not on this trade
            OfferAlreadyDecidedError: If the offer is not pending
        """
        try:
            now = utcnow()
            async with self.store.transaction() as tx:
                trade, role = await load_trade(tx, trade_id, user_id)
                if role is not ParticipantRole.OWNER:
                    raise ForbiddenError(f"Only the item owner can reject offers on trade {trade_id}")
                ensure_status(trade, NEGOTIABLE, 'reject an offer on')

                offer = await _load_offer(tx, trade, offer_id)
                if offer.status is not OfferStatus.PENDING:
                    raise OfferAlreadyDecidedError(offer_id, offer.status)
                rejected = await tx.update_offer_status(
                    offer_id, OfferStatus.PENDING, OfferStatus.REJECTED, now
                )
                if not rejected:
                    raise OfferAlreadyDecidedError(offer_id, offer.status)

            logger.info(f"Offer {offer_id} rejected on trade {trade_id} by {user_id}")
            return rejected

        except TradeError as e:
            logger.warning(f"Reject refused for {user_id} on offer {offer_id}: {e}")
            raise
