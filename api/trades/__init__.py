"""Trades API endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, Request, Security
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from uuid import UUID

from auth import Identity, get_current_user
from trades import (
    ParticipantRole,
    ReceiptResult,
    Trade,
    TradeDetail,
    TradeManager,
    TradeOffer,
    TradeReport,
    TradeShipping,
    TradeStatus,
)
from ..errors import http_error, parse_id

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/trades",
    tags=["Trades"]
)

class InitiateTradeRequest(BaseModel):
    """Request model for initiating a trade."""
    model_config = ConfigDict(populate_by_name=True)

    item_id: UUID = Field(validation_alias=AliasChoices('item_id', 'coin_id', 'itemId', 'coinId'))

class ProposeOfferRequest(BaseModel):
    """Request model for proposing an offer or counter-offer."""
    model_config = ConfigDict(populate_by_name=True)

    offered_item_id: Optional[UUID] = Field(
        None,
        validation_alias=AliasChoices(
            'offered_item_id', 'offered_coin_id', 'offeredItemId', 'offeredCoinId'
        )
    )
    message: Optional[str] = Field(None, max_length=1000)

class ShipRequest(BaseModel):
    """Request model for a shipment attestation."""
    model_config = ConfigDict(populate_by_name=True)

    tracking_number: Optional[str] = Field(
        None,
        max_length=100,
        validation_alias=AliasChoices('tracking_number', 'trackingNumber')
    )

class ReportRequest(BaseModel):
    """Request model for reporting a trade violation."""
    reason: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)

def get_manager(request: Request) -> TradeManager:
    return request.app.state.trade_manager

@router.post("", response_model=Trade)
async def initiate_trade(
    body: InitiateTradeRequest,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Initiate a trade for an item that is open to trade."""
    try:
        return await get_manager(request).ledger.initiate(user.user_id, body.item_id)
    except Exception as e:
        raise http_error(e)

@router.get("", response_model=List[Trade])
async def list_trades(
    request: Request,
    status: Optional[TradeStatus] = Query(None, description="Only trades in this status"),
    role: Optional[ParticipantRole] = Query(None, description="initiator or owner"),
    user: Identity = Security(get_current_user)
):
    """List the caller's trades, most recently updated first."""
    try:
        return await get_manager(request).ledger.list_trades(user.user_id, role=role, status=status)
    except Exception as e:
        raise http_error(e)

@router.get("/{trade_id}", response_model=TradeDetail)
async def get_trade(
    trade_id: str,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Get a trade with its offers and shipping record."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).ledger.get_detail(trade_uuid, user.user_id)
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/offers", response_model=TradeOffer)
async def propose_offer(
    trade_id: str,
    body: ProposeOfferRequest,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Propose an offer, or a counter-offer when the trade already has one."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).offers.propose(
            trade_uuid,
            user.user_id,
            offered_item_id=body.offered_item_id,
            message=body.message
        )
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/offers/{offer_id}/accept", response_model=Trade)
async def accept_offer(
    trade_id: str,
    offer_id: str,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Accept an offer. Every other pending offer on the trade is rejected."""
    trade_uuid = parse_id(trade_id, "trade ID")
    offer_uuid = parse_id(offer_id, "offer ID")
    try:
        return await get_manager(request).offers.accept(trade_uuid, offer_uuid, user.user_id)
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/offers/{offer_id}/reject", response_model=TradeOffer)
async def reject_offer(
    trade_id: str,
    offer_id: str,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Reject a single offer."""
    trade_uuid = parse_id(trade_id, "trade ID")
    offer_uuid = parse_id(offer_id, "offer ID")
    try:
        return await get_manager(request).offers.reject(trade_uuid, offer_uuid, user.user_id)
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/shipping/ship", response_model=TradeShipping)
async def mark_shipped(
    trade_id: str,
    request: Request,
    body: Optional[ShipRequest] = None,
    user: Identity = Security(get_current_user)
):
    """Confirm that the caller shipped their item."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).shipping.mark_shipped(
            trade_uuid,
            user.user_id,
            tracking_number=body.tracking_number if body else None
        )
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/shipping/receive", response_model=ReceiptResult)
async def mark_received(
    trade_id: str,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Confirm that the caller received the counterparty's item."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).shipping.mark_received(trade_uuid, user.user_id)
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/cancel", response_model=Trade)
async def cancel_trade(
    trade_id: str,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Cancel a trade."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).ledger.cancel(trade_uuid, user.user_id)
    except Exception as e:
        raise http_error(e)

@router.post("/{trade_id}/report", response_model=Trade)
async def report_trade(
    trade_id: str,
    body: ReportRequest,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """Report a violation. The trade becomes disputed."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).disputes.file(
            trade_uuid,
            user.user_id,
            body.reason,
            body.description
        )
    except Exception as e:
        raise http_error(e)

@router.get("/{trade_id}/reports", response_model=List[TradeReport])
async def list_reports(
    trade_id: str,
    request: Request,
    user: Identity = Security(get_current_user)
):
    """List reports filed on a trade (moderators and admins)."""
    trade_uuid = parse_id(trade_id, "trade ID")
    try:
        return await get_manager(request).disputes.list_reports(trade_uuid, user.role)
    except Exception as e:
        raise http_error(e)
