"""Trade status transition table.

All legality checks on Trade.status go through this module; commands never
compare statuses on their own.
"""
from typing import Dict, FrozenSet, Iterable

from .errors import InvalidTransitionError, TradeDisputedError
from .models import Trade, TradeStatus

TRANSITIONS: Dict[TradeStatus, FrozenSet[TradeStatus]] = {
    TradeStatus.PENDING: frozenset({
        TradeStatus.COUNTERED,
        TradeStatus.ACCEPTED,
        TradeStatus.CANCELLED,
        TradeStatus.DISPUTED,
    }),
    TradeStatus.COUNTERED: frozenset({
        TradeStatus.ACCEPTED,
        TradeStatus.CANCELLED,
        TradeStatus.DISPUTED,
    }),
    TradeStatus.ACCEPTED: frozenset({
        TradeStatus.COMPLETED,
        TradeStatus.CANCELLED,
        TradeStatus.DISPUTED,
    }),
    TradeStatus.COMPLETED: frozenset(),
    TradeStatus.CANCELLED: frozenset(),
    TradeStatus.DISPUTED: frozenset(),
}

# Offers can be proposed, accepted and rejected
NEGOTIABLE = frozenset({TradeStatus.PENDING, TradeStatus.COUNTERED})

# Counted by the one-active-trade-per-(initiator, item) rule
ACTIVE = frozenset({TradeStatus.PENDING, TradeStatus.COUNTERED, TradeStatus.ACCEPTED})

TERMINAL = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


def can_transition(current: TradeStatus, target: TradeStatus) -> bool:
    return target in TRANSITIONS[current]


def _refuse(trade: Trade, action: str) -> InvalidTransitionError:
    if trade.status is TradeStatus.DISPUTED:
        return TradeDisputedError(
            trade.id, trade.status, action,
            f"Cannot {action} trade {trade.id}: it is under dispute"
        )
    return InvalidTransitionError(trade.id, trade.status, action)


def ensure_transition(trade: Trade, target: TradeStatus, action: str) -> None:
    """Raise unless trade.status may move to target.

    Raises:
        TradeDisputedError: If the trade is disputed
        InvalidTransitionError: For any other illegal move
    """
    if not can_transition(trade.status, target):
        raise _refuse(trade, action)


def ensure_status(trade: Trade, allowed: Iterable[TradeStatus], action: str) -> None:
    """Raise unless trade.status is one of allowed.

    Used by commands that act on a trade without moving its status, such as
    shipping attestations or a second counter-offer.
    """
    if trade.status not in frozenset(allowed):
        raise _refuse(trade, action)
