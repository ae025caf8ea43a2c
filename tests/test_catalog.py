"""Tests for the in-memory coin catalog."""

import uuid

import pytest

from conftest import INITIATOR, OWNER
from trades import ItemNotFoundError

@pytest.mark.asyncio
async def test_get_item(catalog):
    """Test items come back with their owner and trade flag."""
    listed = catalog.add_item(OWNER)
    private = catalog.add_item(OWNER, tradeable=False)

    assert (await catalog.get(listed.id)).tradeable is True
    assert (await catalog.get(private.id)).tradeable is False
    assert (await catalog.get(private.id)).owner_id == OWNER

    with pytest.raises(ItemNotFoundError):
        await catalog.get(uuid.uuid4())

@pytest.mark.asyncio
async def test_is_owned_by(catalog):
    """Test ownership checks, including for missing items."""
    item = catalog.add_item(OWNER)

    assert await catalog.is_owned_by(item.id, OWNER) is True
    assert await catalog.is_owned_by(item.id, INITIATOR) is False
    assert await catalog.is_owned_by(uuid.uuid4(), OWNER) is False
