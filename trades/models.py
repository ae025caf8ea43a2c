"""Trade aggregate models.

Every model here is the canonical shape of a row or read model. Store backends
and the API build and return these; nothing downstream sees raw rows.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TradeStatus(str, Enum):
    PENDING = "pending"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ReportStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ParticipantRole(str, Enum):
    INITIATOR = "initiator"
    OWNER = "owner"

    @property
    def other(self) -> "ParticipantRole":
        if self is ParticipantRole.INITIATOR:
            return ParticipantRole.OWNER
        return ParticipantRole.INITIATOR


class Trade(BaseModel):
    """One negotiation between two users over one listed item."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    item_id: UUID
    initiator_id: str
    item_owner_id: str
    status: TradeStatus
    created_at: datetime
    updated_at: datetime

    def role_of(self, user_id: str) -> Optional[ParticipantRole]:
        """Return the user's role in this trade, or None for outsiders."""
        if user_id == self.initiator_id:
            return ParticipantRole.INITIATOR
        if user_id == self.item_owner_id:
            return ParticipantRole.OWNER
        return None

    def participant_id(self, role: ParticipantRole) -> str:
        if role is ParticipantRole.INITIATOR:
            return self.initiator_id
        return self.item_owner_id


class TradeOffer(BaseModel):
    """A proposal attached to a trade. offered_item_id is None for an empty slot."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    trade_id: UUID
    offerer_id: str
    offered_item_id: Optional[UUID] = None
    message: Optional[str] = None
    is_counter_offer: bool = False
    status: OfferStatus
    created_at: datetime
    updated_at: datetime


class ShipmentSide(BaseModel):
    """One participant's half of the physical exchange.

    shipped/received describe what this participant did: shipped their own item,
    and received the item sent by the counterparty.
    """
    model_config = ConfigDict(frozen=True)

    shipped: bool = False
    shipped_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    received: bool = False
    received_at: Optional[datetime] = None


class TradeShipping(BaseModel):
    """Both sides' shipment state, one record per trade."""
    model_config = ConfigDict(frozen=True)

    trade_id: UUID
    initiator: ShipmentSide = ShipmentSide()
    owner: ShipmentSide = ShipmentSide()
    created_at: datetime
    updated_at: datetime

    def side(self, role: ParticipantRole) -> ShipmentSide:
        if role is ParticipantRole.INITIATOR:
            return self.initiator
        return self.owner

    def with_side(self, role: ParticipantRole, side: ShipmentSide, now: datetime) -> "TradeShipping":
        field = 'initiator' if role is ParticipantRole.INITIATOR else 'owner'
        return self.model_copy(update={field: side, 'updated_at': now})

    @property
    def both_received(self) -> bool:
        return self.initiator.received and self.owner.received

    @property
    def is_empty(self) -> bool:
        return self.initiator == ShipmentSide() and self.owner == ShipmentSide()


class TradeReport(BaseModel):
    """A dispute filed by one participant against the other."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    trade_id: UUID
    reporter_id: str
    reported_user_id: str
    reason: str
    description: Optional[str] = None
    status: ReportStatus = ReportStatus.OPEN
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TradeDetail(BaseModel):
    """Read model for GET /trades/{id}."""
    trade: Trade
    offers: List[TradeOffer]
    shipping: TradeShipping


class ReceiptResult(BaseModel):
    """Outcome of a receive attestation."""
    shipping: TradeShipping
    trade_completed: bool
