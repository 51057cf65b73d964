import pytest
from fastapi.testclient import TestClient

from fencequote.api.deps import build_services
from fencequote.approval.policy import ApprovalPolicy
from fencequote.core.settings import Settings
from fencequote.domain.models import Quote, QuoteStatus
from fencequote.main import create_app
from fencequote.repositories.memory import InMemoryApprovalPolicyStore, InMemoryQuoteStore

S = QuoteStatus


@pytest.fixture
def store(line_factory):
    return InMemoryQuoteStore(
        Quote(id="q1", qbo_class_id="BU1", line_items=[line_factory()]),
        Quote(id="low", line_items=[line_factory(price="6.50")]),
        Quote(id="g1", status=S.SENT, quote_group="G"),
        Quote(id="g2", status=S.SENT, quote_group="G", is_alternative=True),
    )


@pytest.fixture
def client(pricing_data, store):
    policies = InMemoryApprovalPolicyStore(ApprovalPolicy(qbo_class_id="BU9", margin_below_percent=50))
    services = build_services(pricing_data, store, policies, Settings(RATE_SHEET_CACHE_TTL_SECONDS=60))
    with TestClient(create_app(services)) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"]


def test_totals_endpoint(client):
    r = client.post(
        "/api/pricing/totals",
        json={
            "line_items": [{"id": "l1", "quantity": "100", "unit_price": "10.00"}],
            "discount_percent": "10",
            "tax_rate_percent": "8",
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert body["subtotal"] == "1000.00"
    assert body["total"] == "972.00"


def test_totals_rejects_negative_quantity(client):
    r = client.post("/api/pricing/totals", json={"line_items": [{"id": "l1", "quantity": "-1", "unit_price": "1"}]})
    assert r.status_code == 422


def test_resolve_uses_community_sheet(client):
    r = client.post(
        "/api/pricing/resolve",
        json={"sku_id": "SKU1", "base_cost": "10.00", "context": {"community_id": "C1"}},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["price"] == "21.00"
    assert body["source"] == "community"
    assert body["pricing_source"] == "Rate Sheet: Oakwood Community"
    assert body["is_cost_fallback"] is False


def test_resolve_without_cost_prices_catalog_sku(client):
    r = client.post(
        "/api/pricing/resolve",
        json={"sku_id": "SKU2", "context": {"business_unit_class_id": "BU1"}},
    )
    assert r.status_code == 200
    assert r.json()["price"] == "30.00"


def test_approval_preview_uses_business_unit_policy(client):
    line = {"id": "l1", "quantity": "100", "unit_price": "10.00", "material_unit_cost": "4", "labor_unit_cost": "2"}

    relaxed = client.post("/api/pricing/approval", json={"line_items": [line]}).json()
    assert relaxed["required"] is False

    strict = client.post("/api/pricing/approval", json={"line_items": [line], "qbo_class_id": "BU9"}).json()
    assert strict["required"] is True
    assert strict["reasons"] == ["Margin (40.0%) below 50%"]
    assert strict["totals"]["margin_percent"] == "40.00"


def test_get_quote_and_missing_quote(client):
    r = client.get("/api/quotes/q1")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "draft"
    assert body["totals"]["total"] == "1000.00"
    assert "send" in body["allowed_actions"]

    missing = client.get("/api/quotes/nope")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "QUOTE_NOT_FOUND"


def test_send_then_history(client):
    r = client.post("/api/quotes/q1/send", json={"actor": "rep@fence.test"})
    assert r.status_code == 200
    assert r.json()["quote"]["status"] == "sent"
    assert r.json()["previous_status"] == "draft"

    history = client.get("/api/quotes/q1/history").json()
    assert [(h["from_status"], h["to_status"], h["actor"]) for h in history] == [("draft", "sent", "rep@fence.test")]


def test_send_blocked_by_approval_is_a_conflict(client):
    r = client.post("/api/quotes/low/send")
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["code"] == "APPROVAL_REQUIRED"
    assert err["meta"]["reasons"]


def test_accept_archives_alternatives(client, store):
    r = client.post("/api/quotes/g1/mark_accepted")
    assert r.status_code == 200
    assert r.json()["archived_quote_ids"] == ["g2"]
    assert store.quotes["g2"].status is S.ARCHIVED


def test_illegal_and_unknown_actions(client):
    r = client.post("/api/quotes/q1/convert_to_job", json={"line_item_ids": ["l1"]})
    assert r.status_code == 409

    r = client.post("/api/quotes/q1/teleport")
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "UNKNOWN_EVENT"


def test_lost_requires_reason(client):
    r = client.post("/api/quotes/q1/mark_lost", json={"notes": "went quiet"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "LOST_REASON_REQUIRED"

    r = client.post("/api/quotes/q1/mark_lost", json={"lost_reason": "no_response"})
    assert r.status_code == 200
    assert r.json()["quote"]["lost_reason"] == "no_response"


def test_resolve_unknown_sku_is_rejected(client):
    r = client.post("/api/pricing/resolve", json={"sku_id": "NOPE", "context": {"business_unit_class_id": "BU1"}})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNKNOWN_SKU"


def test_allowed_actions_reflect_approval_guard(client):
    body = client.get("/api/quotes/low").json()
    assert "send" not in body["allowed_actions"]
    assert "request_approval" in body["allowed_actions"]

    pending = client.post("/api/quotes/low/request_approval").json()["quote"]
    assert "send" not in pending["allowed_actions"]
    approved = client.post("/api/quotes/low/approve", json={"actor": "mgr"}).json()["quote"]
    assert "send" in approved["allowed_actions"]


def test_create_quote(client, store):
    r = client.post(
        "/api/quotes",
        json={
            "qbo_class_id": "BU1",
            "tax_rate_percent": "8",
            "line_items": [
                {
                    "id": "l1",
                    "quantity": "12.375",
                    "unit_price": "10.00",
                    "unit_cost": "6.00",
                    "material_unit_cost": "4.00",
                    "labor_unit_cost": "2.00",
                }
            ],
            "actor": "rep",
        },
    )
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "draft"
    assert body["line_items"][0]["quantity"] == "12.3750"
    assert "send" in body["allowed_actions"]

    history = client.get(f"/api/quotes/{body['id']}/history").json()
    assert [(h["from_status"], h["to_status"], h["event"]) for h in history] == [(None, "draft", "create")]


def test_create_alternative_assigns_group(client, store):
    r = client.post("/api/quotes/q1/alternatives", json={"actor": "rep"})
    assert r.status_code == 201
    alt = r.json()
    assert alt["quote_group"] == "q1"
    assert alt["is_alternative"] is True
    assert alt["qbo_class_id"] == "BU1"
    assert alt["line_items"] == []
    assert store.quotes["q1"].quote_group == "q1"

    again = client.post("/api/quotes/g1/alternatives").json()
    assert again["quote_group"] == "G"


def test_alternative_of_missing_quote_is_not_found(client):
    r = client.post("/api/quotes/nope/alternatives")
    assert r.status_code == 404
