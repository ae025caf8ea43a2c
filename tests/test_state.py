"""Tests for the trade status transition table."""

import uuid
from datetime import datetime, timezone

import pytest

from trades import InvalidTransitionError, Trade, TradeDisputedError, TradeStatus
from trades.state import (
    ACTIVE,
    NEGOTIABLE,
    TERMINAL,
    TRANSITIONS,
    can_transition,
    ensure_status,
    ensure_transition,
)

def make_trade(status: TradeStatus) -> Trade:
    now = datetime.now(timezone.utc)
    return Trade(
        id=uuid.uuid4(),
        item_id=uuid.uuid4(),
        initiator_id="a",
        item_owner_id="b",
        status=status,
        created_at=now,
        updated_at=now
    )

def test_every_status_has_an_entry():
    """Test the table covers every status."""
    assert set(TRANSITIONS) == set(TradeStatus)

def test_terminal_statuses():
    """Test completed, cancelled and disputed have no way out."""
    assert TERMINAL == {TradeStatus.COMPLETED, TradeStatus.CANCELLED, TradeStatus.DISPUTED}
    for status in TERMINAL:
        for target in TradeStatus:
            assert not can_transition(status, target)

@pytest.mark.parametrize("current,target", [
    (TradeStatus.PENDING, TradeStatus.COUNTERED),
    (TradeStatus.PENDING, TradeStatus.ACCEPTED),
    (TradeStatus.PENDING, TradeStatus.CANCELLED),
    (TradeStatus.PENDING, TradeStatus.DISPUTED),
    (TradeStatus.COUNTERED, TradeStatus.ACCEPTED),
    (TradeStatus.COUNTERED, TradeStatus.CANCELLED),
    (TradeStatus.COUNTERED, TradeStatus.DISPUTED),
    (TradeStatus.ACCEPTED, TradeStatus.COMPLETED),
    (TradeStatus.ACCEPTED, TradeStatus.CANCELLED),
    (TradeStatus.ACCEPTED, TradeStatus.DISPUTED),
])
def test_allowed_transitions(current, target):
    """Test the legal moves."""
    assert can_transition(current, target)

@pytest.mark.parametrize("current,target", [
    (TradeStatus.PENDING, TradeStatus.COMPLETED),
    (TradeStatus.COUNTERED, TradeStatus.PENDING),
    (TradeStatus.COUNTERED, TradeStatus.COMPLETED),
    (TradeStatus.ACCEPTED, TradeStatus.PENDING),
    (TradeStatus.ACCEPTED, TradeStatus.COUNTERED),
])
def test_forbidden_transitions(current, target):
    """Test moves outside the table."""
    assert not can_transition(current, target)

def test_negotiable_and_active_sets():
    """Test the derived status groups."""
    assert NEGOTIABLE == {TradeStatus.PENDING, TradeStatus.COUNTERED}
    assert ACTIVE == NEGOTIABLE | {TradeStatus.ACCEPTED}

def test_ensure_transition_raises_invalid_transition():
    """Test an illegal move raises with the current status attached."""
    trade = make_trade(TradeStatus.CANCELLED)
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_transition(trade, TradeStatus.ACCEPTED, 'accept an offer on')
    assert not isinstance(exc_info.value, TradeDisputedError)
    assert exc_info.value.extra() == {'status': 'cancelled'}

def test_ensure_transition_on_disputed_trade():
    """Test a disputed trade reports TradeDisputedError."""
    trade = make_trade(TradeStatus.DISPUTED)
    with pytest.raises(TradeDisputedError):
        ensure_transition(trade, TradeStatus.COMPLETED, 'complete')

def test_ensure_status():
    """Test status membership checks."""
    ensure_status(make_trade(TradeStatus.ACCEPTED), [TradeStatus.ACCEPTED], 'ship')
    with pytest.raises(InvalidTransitionError):
        ensure_status(make_trade(TradeStatus.PENDING), [TradeStatus.ACCEPTED], 'ship')
    with pytest.raises(TradeDisputedError):
        ensure_status(make_trade(TradeStatus.DISPUTED), [TradeStatus.ACCEPTED], 'ship')
