"""Trade error types.

Every failure a trade command can report is one of these. Each carries a stable
``code`` that the API sends to clients next to the human readable message.
"""
from typing import Any, Dict, Optional
from uuid import UUID


class TradeError(Exception):
    """Base class for trade-related errors."""
    code = 'trade_error'

    def extra(self) -> Dict[str, Any]:
        """Additional fields the client needs to react to the error."""
        return {}


class NotAParticipantError(TradeError):
    """Raised when the acting user is neither the initiator nor the item owner."""
    code = 'not_a_participant'

    def __init__(self, trade_id: UUID, user_id: str):
        self.trade_id = trade_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not a participant in trade {trade_id}")


class ForbiddenError(TradeError):
    """Raised when the acting user lacks the rights for a command."""
    code = 'forbidden'


class NotFoundError(TradeError):
    """Base class for missing trades, offers, items and reports."""
    code = 'not_found'


class TradeNotFoundError(NotFoundError):
    code = 'trade_not_found'

    def __init__(self, trade_id: UUID):
        self.trade_id = trade_id
        super().__init__(f"Trade {trade_id} not found")


class OfferNotFoundError(NotFoundError):
    code = 'offer_not_found'

    def __init__(self, offer_id: UUID, trade_id: Optional[UUID] = None):
        self.offer_id = offer_id
        self.trade_id = trade_id
        where = f" on trade {trade_id}" if trade_id else ""
        super().__init__(f"Offer {offer_id} not found{where}")


class ItemNotFoundError(NotFoundError):
    code = 'item_not_found'

    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")


class ReportNotFoundError(NotFoundError):
    code = 'report_not_found'

    def __init__(self, report_id: UUID):
        self.report_id = report_id
        super().__init__(f"Report {report_id} not found")


class InvalidTransitionError(TradeError):
    """Raised when a command is not legal for the trade's current status."""
    code = 'invalid_transition'

    def __init__(self, trade_id: UUID, current: Any, action: str, message: Optional[str] = None):
        self.trade_id = trade_id
        self.current = current
        self.action = action
        status = getattr(current, 'value', current)
        super().__init__(
            message or f"Cannot {action} trade {trade_id} while it is {status}"
        )

    def extra(self) -> Dict[str, Any]:
        # Conflicts raised by the store do not know the status they lost to
        if self.current is None:
            return {}
        return {'status': getattr(self.current, 'value', self.current)}


class TradeDisputedError(InvalidTransitionError):
    """Raised for any command against a trade frozen by a dispute."""
    code = 'trade_disputed'


class ShipmentNotSentError(InvalidTransitionError):
    """Raised when receipt is confirmed before the counterparty shipped."""
    code = 'shipment_not_sent'


class TradeConflictError(InvalidTransitionError):
    """Raised when a concurrent writer changed the trade first."""
    code = 'trade_conflict'

    def extra(self) -> Dict[str, Any]:
        extra = super().extra()
        if self.trade_id is not None:
            extra['trade_id'] = str(self.trade_id)
        return extra


class OfferAlreadyDecidedError(TradeError):
    """Raised when an offer was already accepted or rejected, including by a concurrent call."""
    code = 'offer_already_decided'

    def __init__(self, offer_id: UUID, status: Any):
        self.offer_id = offer_id
        self.status = status
        super().__init__(
            f"Offer {offer_id} has already been decided ({getattr(status, 'value', status)})"
        )

    def extra(self) -> Dict[str, Any]:
        return {'offer_status': getattr(self.status, 'value', self.status)}


class ReportAlreadyClosedError(TradeError):
    """Raised when a moderator closes a report that is no longer open."""
    code = 'report_already_closed'

    def __init__(self, report_id: UUID):
        self.report_id = report_id
        super().__init__(f"Report {report_id} is already closed")


class DuplicateActiveTradeError(TradeError):
    """Raised when the initiator already has an active trade for the item."""
    code = 'duplicate_active_trade'

    def __init__(self, existing_trade_id: UUID):
        self.existing_trade_id = existing_trade_id
        super().__init__(
            f"An active trade for this item already exists: {existing_trade_id}"
        )

    def extra(self) -> Dict[str, Any]:
        return {'existing_trade_id': str(self.existing_trade_id)}


class ItemNotTradeableError(TradeError):
    code = 'item_not_tradeable'

    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not open to trade")


class ItemNotOwnedError(TradeError):
    code = 'item_not_owned'

    def __init__(self, item_id: UUID, user_id: str):
        self.item_id = item_id
        self.user_id = user_id
        super().__init__(f"Item {item_id} does not belong to {user_id}")


class SelfTradeError(TradeError):
    code = 'self_trade'

    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(f"Cannot initiate a trade for your own item {item_id}")


__all__ = [
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
