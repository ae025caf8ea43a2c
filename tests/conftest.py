"""Shared fixtures for the trade tests.

Everything runs on the in-memory store and catalog, so no database is needed.
"""

import pytest
import pytest_asyncio

from catalog import CatalogItem, MemoryCoinCatalog
from trades import MemoryTradeStore, Trade, TradeManager

# Test users
OWNER = "user-owner"
INITIATOR = "user-initiator"
OUTSIDER = "user-outsider"

@pytest.fixture
def catalog() -> MemoryCoinCatalog:
    """Create an empty in-memory catalog."""
    return MemoryCoinCatalog()

@pytest.fixture
def store() -> MemoryTradeStore:
    """Create an empty in-memory trade store."""
    return MemoryTradeStore()

@pytest.fixture
def manager(store, catalog) -> TradeManager:
    """Create a TradeManager over the memory store and catalog."""
    return TradeManager(store, catalog)

@pytest.fixture
def listed_item(catalog) -> CatalogItem:
    """A coin owned by OWNER that is open to trade."""
    return catalog.add_item(OWNER)

@pytest.fixture
def offered_item(catalog) -> CatalogItem:
    """A coin owned by INITIATOR to offer in exchange."""
    return catalog.add_item(INITIATOR)

@pytest_asyncio.fixture
async def trade(manager, listed_item) -> Trade:
    """A pending trade started by INITIATOR on OWNER's coin."""
    return await manager.ledger.initiate(INITIATOR, listed_item.id)

@pytest_asyncio.fixture
async def accepted_trade(manager, trade, offered_item) -> Trade:
    """A trade whose only offer OWNER has accepted."""
    offer = await manager.offers.propose(trade.id, INITIATOR, offered_item.id)
    return await manager.offers.accept(trade.id, offer.id, OWNER)
