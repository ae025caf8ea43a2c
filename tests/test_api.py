"""Tests for the trades HTTP API."""

import uuid
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from api import create_app
from auth import JWTSessionProvider
from conftest import INITIATOR, OUTSIDER, OWNER
from database.exceptions import StoreUnavailableError
from trades import TradeManager, TradeStore

@pytest.fixture
def provider() -> JWTSessionProvider:
    return JWTSessionProvider(secret="api-test-secret")

@pytest.fixture
def client(manager, provider):
    """Create a test client serving the memory-backed manager."""
    app = create_app(manager=manager, identity_provider=provider)
    with TestClient(app) as client:
        yield client

@pytest.fixture
def headers(provider):
    """Build Authorization headers for a user."""
    def build(user_id: str, role: str = 'user'):
        return {"Authorization": f"Bearer {provider.issue_token(user_id, role)}"}
    return build

def start_trade(client, headers, item_id) -> dict:
    response = client.post("/trades", json={"item_id": str(item_id)}, headers=headers(INITIATOR))
    assert response.status_code == 200, response.text
    return response.json()

def accept_new_trade(client, headers, item_id, offered_item_id) -> dict:
    trade = start_trade(client, headers, item_id)
    offer = client.post(
        f"/trades/{trade['id']}/offers",
        json={"offered_item_id": str(offered_item_id)},
        headers=headers(INITIATOR)
    ).json()
    response = client.post(
        f"/trades/{trade['id']}/offers/{offer['id']}/accept",
        headers=headers(OWNER)
    )
    assert response.status_code == 200, response.text
    return response.json()

def test_requires_authentication(client, listed_item):
    """Test requests without a valid bearer token get 401."""
    response = client.post("/trades", json={"item_id": str(listed_item.id)})
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "unauthenticated"

    response = client.get("/trades", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401

def test_health(client):
    """Test the liveness endpoint."""
    assert client.get("/health").json() == {"status": "ok"}

def test_initiate_and_get_trade(client, headers, listed_item):
    """Test a new trade reads back pending with no offers and empty shipping."""
    trade = start_trade(client, headers, listed_item.id)
    assert trade["status"] == "pending"
    assert trade["item_id"] == str(listed_item.id)
    assert trade["initiator_id"] == INITIATOR
    assert trade["item_owner_id"] == OWNER

    response = client.get(f"/trades/{trade['id']}", headers=headers(OWNER))
    assert response.status_code == 200
    detail = response.json()
    assert detail["trade"]["status"] == "pending"
    assert detail["offers"] == []
    assert detail["shipping"]["initiator"]["shipped"] is False
    assert detail["shipping"]["owner"]["received"] is False

def test_initiate_accepts_coin_id_alias(client, headers, listed_item):
    """Test the historical coin_id field name is still understood."""
    response = client.post("/trades", json={"coin_id": str(listed_item.id)}, headers=headers(INITIATOR))
    assert response.status_code == 200
    assert response.json()["item_id"] == str(listed_item.id)

def test_initiate_errors(client, headers, catalog, listed_item):
    """Test item preconditions map to 404, 400 and 409."""
    response = client.post("/trades", json={"item_id": str(uuid.uuid4())}, headers=headers(INITIATOR))
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "item_not_found"

    closed = catalog.add_item(OWNER, tradeable=False)
    response = client.post("/trades", json={"item_id": str(closed.id)}, headers=headers(INITIATOR))
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "item_not_tradeable"

    response = client.post("/trades", json={"item_id": str(listed_item.id)}, headers=headers(OWNER))
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "self_trade"

    trade = start_trade(client, headers, listed_item.id)
    response = client.post("/trades", json={"item_id": str(listed_item.id)}, headers=headers(INITIATOR))
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "duplicate_active_trade"
    assert response.json()["detail"]["existing_trade_id"] == trade["id"]

def test_detail_for_outsider_and_bad_id(client, headers, listed_item):
    """Test non-participants get 403 and malformed ids get 400."""
    trade = start_trade(client, headers, listed_item.id)

    response = client.get(f"/trades/{trade['id']}", headers=headers(OUTSIDER))
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "not_a_participant"

    response = client.get("/trades/not-a-uuid", headers=headers(INITIATOR))
    assert response.status_code == 400

    response = client.get(f"/trades/{uuid.uuid4()}", headers=headers(INITIATOR))
    assert response.status_code == 404

def test_list_trades(client, headers, listed_item):
    """Test listing with role and status filters."""
    trade = start_trade(client, headers, listed_item.id)

    response = client.get("/trades", headers=headers(OWNER))
    assert [t["id"] for t in response.json()] == [trade["id"]]

    response = client.get("/trades", params={"role": "initiator"}, headers=headers(OWNER))
    assert response.json() == []

    response = client.get("/trades", params={"status": "cancelled"}, headers=headers(INITIATOR))
    assert response.json() == []

    response = client.get("/trades", params={"status": "bogus"}, headers=headers(INITIATOR))
    assert response.status_code == 422

def test_scenario_cancel_then_propose(client, headers, listed_item, offered_item):
    """Test a cancelled trade refuses later offers with 409."""
    trade = start_trade(client, headers, listed_item.id)

    response = client.post(f"/trades/{trade['id']}/cancel", headers=headers(INITIATOR))
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    response = client.post(
        f"/trades/{trade['id']}/offers",
        json={"offered_item_id": str(offered_item.id)},
        headers=headers(INITIATOR)
    )
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "invalid_transition"
    assert response.json()["detail"]["status"] == "cancelled"

def test_scenario_accept_rejects_pending_sibling(client, headers, catalog, listed_item, offered_item):
    """Test accepting O1 rejects the still pending O2."""
    trade = start_trade(client, headers, listed_item.id)
    o1 = client.post(
        f"/trades/{trade['id']}/offers",
        json={"offered_item_id": str(offered_item.id), "message": "Even swap"},
        headers=headers(INITIATOR)
    ).json()
    second_item = catalog.add_item(INITIATOR)
    o2 = client.post(
        f"/trades/{trade['id']}/offers",
        json={"offered_coin_id": str(second_item.id)},
        headers=headers(INITIATOR)
    ).json()
    assert o1["is_counter_offer"] is False
    assert o2["is_counter_offer"] is True
    assert o2["offered_item_id"] == str(second_item.id)

    response = client.post(f"/trades/{trade['id']}/offers/{o1['id']}/accept", headers=headers(OWNER))
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    detail = client.get(f"/trades/{trade['id']}", headers=headers(INITIATOR)).json()
    statuses = {o["id"]: o["status"] for o in detail["offers"]}
    assert statuses == {o1["id"]: "accepted", o2["id"]: "rejected"}

    response = client.post(f"/trades/{trade['id']}/offers/{o2['id']}/accept", headers=headers(OWNER))
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "offer_already_decided"

def test_accept_and_reject_by_initiator(client, headers, listed_item, offered_item):
    """Test only the owner decides offers."""
    trade = start_trade(client, headers, listed_item.id)
    offer = client.post(
        f"/trades/{trade['id']}/offers",
        json={"offered_item_id": str(offered_item.id)},
        headers=headers(INITIATOR)
    ).json()

    for action in ("accept", "reject"):
        response = client.post(
            f"/trades/{trade['id']}/offers/{offer['id']}/{action}",
            headers=headers(INITIATOR)
        )
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "forbidden"

    response = client.post(f"/trades/{trade['id']}/offers/{offer['id']}/reject", headers=headers(OWNER))
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

def test_offer_validation(client, headers, listed_item):
    """Test message length is limited."""
    trade = start_trade(client, headers, listed_item.id)
    response = client.post(
        f"/trades/{trade['id']}/offers",
        json={"message": "x" * 1001},
        headers=headers(INITIATOR)
    )
    assert response.status_code == 422

def test_scenario_ship_and_receive(client, headers, listed_item, offered_item):
    """Test ship, ship, receive, receive completes the trade."""
    trade = accept_new_trade(client, headers, listed_item.id, offered_item.id)
    tid = trade["id"]

    response = client.post(f"/trades/{tid}/shipping/ship", headers=headers(INITIATOR))
    assert response.status_code == 200
    assert response.json()["initiator"]["shipped"] is True
    assert response.json()["initiator"]["tracking_number"] is None

    response = client.post(
        f"/trades/{tid}/shipping/ship",
        json={"tracking_number": "TRK1"},
        headers=headers(OWNER)
    )
    assert response.status_code == 200
    assert response.json()["owner"]["tracking_number"] == "TRK1"

    response = client.post(f"/trades/{tid}/shipping/receive", headers=headers(INITIATOR))
    assert response.status_code == 200
    assert response.json()["trade_completed"] is False

    response = client.post(f"/trades/{tid}/shipping/receive", headers=headers(OWNER))
    assert response.status_code == 200
    body = response.json()
    assert body["trade_completed"] is True
    for side in ("initiator", "owner"):
        assert body["shipping"][side]["shipped"] is True
        assert body["shipping"][side]["shipped_at"] is not None
        assert body["shipping"][side]["received"] is True
        assert body["shipping"][side]["received_at"] is not None

    detail = client.get(f"/trades/{tid}", headers=headers(OWNER)).json()
    assert detail["trade"]["status"] == "completed"

def test_receive_before_ship(client, headers, listed_item, offered_item):
    """Test receipt before the counterparty shipped is a 409."""
    trade = accept_new_trade(client, headers, listed_item.id, offered_item.id)
    response = client.post(f"/trades/{trade['id']}/shipping/receive", headers=headers(OWNER))
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "shipment_not_sent"

def test_scenario_report_then_ship(client, headers, listed_item, offered_item):
    """Test a report freezes the trade and later shipping is refused."""
    trade = accept_new_trade(client, headers, listed_item.id, offered_item.id)
    tid = trade["id"]

    response = client.post(
        f"/trades/{tid}/report",
        json={"reason": "Suspicious", "description": "Asked to pay off-platform"},
        headers=headers(INITIATOR)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "disputed"

    response = client.post(f"/trades/{tid}/shipping/ship", headers=headers(OWNER))
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "trade_disputed"

def test_report_validation(client, headers, listed_item):
    """Test reason must be 1 to 100 characters."""
    trade = start_trade(client, headers, listed_item.id)
    for reason in ("", "r" * 101):
        response = client.post(
            f"/trades/{trade['id']}/report",
            json={"reason": reason},
            headers=headers(INITIATOR)
        )
        assert response.status_code == 422

def test_report_moderation(client, headers, listed_item):
    """Test moderators list and close reports, users cannot."""
    trade = start_trade(client, headers, listed_item.id)
    client.post(f"/trades/{trade['id']}/report", json={"reason": "Spam"}, headers=headers(OWNER))

    response = client.get(f"/trades/{trade['id']}/reports", headers=headers(OWNER))
    assert response.status_code == 403

    response = client.get(f"/trades/{trade['id']}/reports", headers=headers("mod-1", "moderator"))
    assert response.status_code == 200
    reports = response.json()
    assert len(reports) == 1
    assert reports[0]["reporter_id"] == OWNER
    assert reports[0]["reported_user_id"] == INITIATOR

    report_id = reports[0]["id"]
    response = client.post(f"/reports/{report_id}/close", json={"notes": "Handled"}, headers=headers(OWNER))
    assert response.status_code == 403

    response = client.post(
        f"/reports/{report_id}/close",
        json={"notes": "Handled"},
        headers=headers("admin-1", "admin")
    )
    assert response.status_code == 200
    assert response.json()["status"] == "closed"
    assert response.json()["reviewed_by"] == "admin-1"

    response = client.post(f"/reports/{report_id}/close", headers=headers("mod-1", "moderator"))
    assert response.status_code == 409

class UnavailableStore(TradeStore):
    """Store whose every unit of work fails as if the database were down."""

    @asynccontextmanager
    async def transaction(self):
        raise StoreUnavailableError("connection refused")
        yield

def test_store_unavailable(catalog, provider, headers, listed_item):
    """Test infrastructure failures are a generic 503."""
    app = create_app(manager=TradeManager(UnavailableStore(), catalog), identity_provider=provider)
    with TestClient(app) as client:
        response = client.post("/trades", json={"item_id": str(listed_item.id)}, headers=headers(INITIATOR))

    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "store_unavailable"
    assert "connection refused" not in response.text
