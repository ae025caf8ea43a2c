"""Tests for units of work that a concurrent writer aborts.

A serializable backend can abort a unit of work at any statement or at commit
when another transaction changed the same rows. ConflictingStore reproduces that
on top of the memory store: the next units of work roll back after their body
and raise TradeConflictError.
"""

from contextlib import asynccontextmanager

import pytest

from api import build_manager
from catalog import MemoryCoinCatalog
from conftest import INITIATOR, OWNER
from trades import (
    MemoryTradeStore,
    OfferAlreadyDecidedError,
    OfferStatus,
    PostgresTradeStore,
    TradeConflictError,
    TradeStatus,
    create_store,
)
from trades.store import CONFLICT_RETRIES

class ConflictingStore(MemoryTradeStore):
    """Memory store whose next units of work are aborted after their body."""

    def __init__(self) -> None:
        super().__init__()
        self.conflicts = 0
        self.attempts = 0
        # Runs once, after the first aborted unit of work has rolled back
        self.interleave = None

    @asynccontextmanager
    async def transaction(self):
        self.attempts += 1
        conflict = self.conflicts > 0
        if conflict:
            self.conflicts -= 1
        try:
            async with super().transaction() as tx:
                yield tx
                if conflict:
                    raise TradeConflictError(None, None, 'update', "Aborted by a concurrent writer")
        except TradeConflictError:
            if conflict and self.interleave:
                interleave, self.interleave = self.interleave, None
                await interleave()
            raise

@pytest.fixture
def store() -> ConflictingStore:
    """Replace the shared memory store with one that can abort units of work."""
    return ConflictingStore()

@pytest.mark.asyncio
async def test_aborted_accept_loses_to_committed_winner(manager, store, catalog, trade):
    """Test an accept aborted by a concurrent winner is rerun and sees the decided trade."""
    first = await manager.offers.propose(trade.id, INITIATOR, catalog.add_item(INITIATOR).id)
    second = await manager.offers.propose(trade.id, INITIATOR, catalog.add_item(INITIATOR).id)

    store.attempts = 0
    store.conflicts = 1
    store.interleave = lambda: manager.offers.accept(trade.id, first.id, OWNER)

    with pytest.raises(OfferAlreadyDecidedError) as exc_info:
        await manager.offers.accept(trade.id, second.id, OWNER)
    assert exc_info.value.offer_id == second.id
    # The aborted try, the winner, then the rerun
    assert store.attempts == 3

    detail = await manager.ledger.get_detail(trade.id, OWNER)
    assert detail.trade.status == TradeStatus.ACCEPTED
    statuses = {o.id: o.status for o in detail.offers}
    assert statuses == {first.id: OfferStatus.ACCEPTED, second.id: OfferStatus.REJECTED}

@pytest.mark.asyncio
async def test_aborted_command_succeeds_on_rerun(manager, store, trade, offered_item):
    """Test a command aborted once goes through on its next attempt."""
    offer = await manager.offers.propose(trade.id, INITIATOR, offered_item.id)

    store.attempts = 0
    store.conflicts = 1
    accepted = await manager.offers.accept(trade.id, offer.id, OWNER)

    assert accepted.status == TradeStatus.ACCEPTED
    assert store.attempts == 2
    detail = await manager.ledger.get_detail(trade.id, OWNER)
    assert [o.status for o in detail.offers] == [OfferStatus.ACCEPTED]

@pytest.mark.asyncio
async def test_conflict_reruns_are_bounded(manager, store, trade):
    """Test a trade that keeps conflicting surfaces TradeConflictError unchanged."""
    store.attempts = 0
    store.conflicts = CONFLICT_RETRIES + 10

    with pytest.raises(TradeConflictError):
        await manager.ledger.cancel(trade.id, INITIATOR)
    assert store.attempts == CONFLICT_RETRIES

    store.conflicts = 0
    detail = await manager.ledger.get_detail(trade.id, INITIATOR)
    assert detail.trade.status == TradeStatus.PENDING

def test_conflict_error_fields():
    """Test store conflicts only report the fields they know."""
    unknown = TradeConflictError(None, None, 'update', "Trade was modified concurrently")
    assert unknown.extra() == {}

    trade_id = "6f1b3c1e-8d7a-4c8e-9a55-0f1e2d3c4b5a"
    known = TradeConflictError(trade_id, TradeStatus.PENDING, 'cancel')
    assert known.extra() == {'status': 'pending', 'trade_id': trade_id}

def test_create_store():
    """Test the store_backend setting picks the backend."""
    assert isinstance(create_store('memory'), MemoryTradeStore)
    assert isinstance(create_store('postgres'), PostgresTradeStore)
    with pytest.raises(ValueError):
        create_store('redis')

@pytest.mark.asyncio
async def test_build_memory_manager():
    """Test the API builds a memory-backed manager without a database."""
    manager = await build_manager('memory')

    assert isinstance(manager.store, MemoryTradeStore)
    assert isinstance(manager.catalog, MemoryCoinCatalog)
    with pytest.raises(ValueError):
        await build_manager('redis')
