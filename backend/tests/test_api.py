# backend/tests/test_api.py
from __future__ import annotations

import json
import time
from datetime import timedelta

from rentflow.auth import create_access_token
from rentflow.clients.stripe_client import compute_signature
from rentflow.config import settings

from lifecycle_factories import DEPOSIT, LANDLORD, NOW, OTHER_LANDLORD, RENT, TENANT, TODAY

WEBHOOK_SECRET = "whsec_api_test"


def hdr(actor) -> dict[str, str]:
    return {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role}


def _body(**overrides):
    start = TODAY + timedelta(days=14)
    body = {
        "property_id": 500,
        "tenant_id": TENANT.user_id,
        "landlord_id": LANDLORD.user_id,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=365)).isoformat(),
        "monthly_rent": RENT,
        "security_deposit": DEPOSIT,
        "terms": "Twelve month lease.",
    }
    body.update(overrides)
    return body


def _create(client, **overrides) -> dict:
    r = client.post("/api/contracts", json=_body(**overrides), headers=hdr(LANDLORD))
    assert r.status_code == 201, r.text
    return r.json()


def _signed(client) -> dict:
    c = _create(client, send_immediately=True)
    assert client.post(f"/api/contracts/{c['id']}/sign", json={"signature": "t"}, headers=hdr(TENANT)).status_code == 200
    r = client.post(f"/api/contracts/{c['id']}/sign", json={"signature": "l"}, headers=hdr(LANDLORD))
    assert r.status_code == 200, r.text
    return r.json()


def _signed_webhook(payload: dict) -> tuple[bytes, dict[str, str]]:
    raw = json.dumps(payload).encode()
    ts = str(int(time.time()))
    return raw, {"Stripe-Signature": f"t={ts},v1={compute_signature(WEBHOOK_SECRET, ts, raw)}"}


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers.get("X-Request-ID")


def test_create_and_fetch_contract(client):
    c = _create(client)
    assert c["status"] == "draft"
    assert c["checklist_urgency"] == "ok"

    r = client.get(f"/api/contracts/{c['id']}", headers=hdr(TENANT))
    assert r.status_code == 200
    assert r.json()["monthly_rent"] == RENT

    listed = client.get("/api/contracts", headers=hdr(TENANT)).json()
    assert [x["id"] for x in listed] == [c["id"]]


def test_missing_identity_is_401(client):
    r = client.post("/api/contracts", json=_body())
    assert r.status_code == 401


def test_system_role_cannot_be_claimed_over_http(client):
    r = client.get("/api/contracts", headers={"X-User-Id": "5", "X-User-Role": "system"})
    assert r.status_code == 403


def test_bearer_token(client):
    token = create_access_token(user_id=LANDLORD.user_id, role="landlord")
    r = client.post("/api/contracts", json=_body(), headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 201

    r = client.get("/api/contracts", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


def test_lifecycle_errors_map_to_status_and_code(client):
    c = _create(client)
    r = client.post(f"/api/contracts/{c['id']}/send", headers=hdr(TENANT))
    assert r.status_code == 403
    body = r.json()
    assert body["error"] == "forbidden"
    assert body["retryable"] is False
    assert "request_id" in body

    r = client.post(f"/api/contracts/{c['id']}/sign", json={"signature": "l"}, headers=hdr(LANDLORD))
    assert r.status_code == 409
    assert r.json()["error"] == "out_of_order"

    r = client.get("/api/contracts/99999", headers=hdr(TENANT))
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_validation_errors_carry_problems(client):
    r = client.post("/api/contracts", json=_body(terms=None, send_immediately=True), headers=hdr(LANDLORD))
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "validation_failed"
    assert "terms text is required" in body["context"]["problems"]


def test_delete_contract(client):
    c = _create(client)
    r = client.delete(f"/api/contracts/{c['id']}", headers=hdr(LANDLORD))
    assert r.status_code == 204
    assert client.get(f"/api/contracts/{c['id']}", headers=hdr(LANDLORD)).status_code == 404


def test_event_feed(client):
    c = _create(client, send_immediately=True)
    r = client.get(f"/api/contracts/{c['id']}/events", headers=hdr(TENANT))
    assert r.status_code == 200
    types = [e["event_type"] for e in r.json()]
    assert types == ["contract.sent", "contract.created"]
    assert r.json()[0]["payload"]["status"] == "sent_to_tenant"

    assert client.get(f"/api/contracts/{c['id']}/events?limit=0", headers=hdr(TENANT)).status_code == 422


def test_ops_sweep_needs_admin(client):
    assert client.post("/api/ops/sweep", headers=hdr(TENANT)).status_code == 403
    r = client.post("/api/ops/sweep", headers={"X-User-Id": "1", "X-User-Role": "admin"})
    assert r.status_code == 200
    assert r.json()["activated"] == []


def test_payment_flow_over_http(client, provider):
    c = _signed(client)
    r = client.post(f"/api/contracts/{c['id']}/payments/rent/intent", headers=hdr(TENANT))
    assert r.status_code == 403

    r = client.post(f"/api/contracts/{c['id']}/payments/deposit/intent", headers=hdr(TENANT))
    assert r.status_code == 200, r.text
    intent = r.json()
    assert intent["amount"] == DEPOSIT
    assert intent["platform_fee"] == 10000

    provider.succeed(intent["payment_intent_id"])
    r = client.post(
        f"/api/contracts/{c['id']}/payments/deposit/confirm",
        json={"payment_ref": intent["payment_intent_id"]},
        headers=hdr(TENANT),
    )
    assert r.status_code == 200
    assert r.json()["deposit_paid"] is True


def test_webhook_rejects_bad_signatures(client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    r = client.post("/api/payments/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=deadbeef"})
    assert r.status_code == 400


def test_webhook_confirms_the_deposit(client, provider, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    c = _signed(client)
    intent = client.post(f"/api/contracts/{c['id']}/payments/deposit/intent", headers=hdr(TENANT)).json()
    provider.succeed(intent["payment_intent_id"])

    raw, headers = _signed_webhook(
        {"type": "payment_intent.succeeded", "data": {"object": {"id": intent["payment_intent_id"]}}}
    )
    r = client.post("/api/payments/webhook", content=raw, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"received": True, "handled": True, "contract_id": c["id"]}

    got = client.get(f"/api/contracts/{c['id']}", headers=hdr(TENANT)).json()
    assert got["deposit_paid"] is True

    raw, headers = _signed_webhook({"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})
    r = client.post("/api/payments/webhook", content=raw, headers=headers)
    assert r.json()["handled"] is False


def test_key_collection_over_http(client, provider):
    c = _signed(client)
    intent = client.post(f"/api/contracts/{c['id']}/payments/deposit/intent", headers=hdr(TENANT)).json()
    provider.succeed(intent["payment_intent_id"])
    client.post(
        f"/api/contracts/{c['id']}/payments/deposit/confirm",
        json={"payment_ref": intent["payment_intent_id"]},
        headers=hdr(TENANT),
    )

    slots = [
        {"starts_at": (NOW + timedelta(days=d)).isoformat(), "location": "Portal 2"} for d in (2, 3)
    ]
    r = client.post(f"/api/contracts/{c['id']}/key-collection/propose", json={"slots": slots}, headers=hdr(TENANT))
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "proposed"

    r = client.post(f"/api/contracts/{c['id']}/key-collection/confirm", json={"slot_index": 1}, headers=hdr(LANDLORD))
    assert r.status_code == 200
    assert r.json()["chosen_slot_index"] == 1

    r = client.post(f"/api/contracts/{c['id']}/key-collection/complete", headers=hdr(LANDLORD))
    assert r.status_code == 200
    assert client.get(f"/api/contracts/{c['id']}", headers=hdr(TENANT)).json()["status"] == "active"


def test_termination_over_http(client):
    c = _signed(client)
    r = client.post(
        f"/api/contracts/{c['id']}/termination",
        json={"reason": "Short", "desired_end_date": (TODAY + timedelta(days=40)).isoformat()},
        headers=hdr(TENANT),
    )
    assert r.status_code == 422

    r = client.post(
        f"/api/contracts/{c['id']}/termination",
        json={"reason": "Relocating abroad for work", "desired_end_date": (TODAY + timedelta(days=40)).isoformat()},
        headers=hdr(TENANT),
    )
    assert r.status_code == 201
    req = r.json()

    pending = client.get("/api/requests/pending", headers=hdr(LANDLORD)).json()
    assert [p["id"] for p in pending] == [req["id"]]

    r = client.post(f"/api/requests/{req['id']}/termination/respond", json={"approved": True}, headers=hdr(LANDLORD))
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    assert client.get(f"/api/contracts/{c['id']}", headers=hdr(TENANT)).json()["status"] == "terminated"


def test_webhook_acknowledges_payments_it_cannot_apply(client, provider, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    c = _signed(client)
    intent = client.post(f"/api/contracts/{c['id']}/payments/deposit/intent", headers=hdr(TENANT)).json()
    provider.succeed(intent["payment_intent_id"])

    # the landlord records the deposit by hand before the provider event arrives
    r = client.post(
        f"/api/contracts/{c['id']}/payments/manual",
        json={"kind": "deposit", "method": "bank_transfer", "reference": "TRX-1"},
        headers=hdr(LANDLORD),
    )
    assert r.status_code == 200, r.text

    raw, headers = _signed_webhook(
        {"type": "payment_intent.succeeded", "data": {"object": {"id": intent["payment_intent_id"]}}}
    )
    r = client.post("/api/payments/webhook", content=raw, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"received": True, "handled": False, "error": "payment_mismatch"}

    got = client.get(f"/api/contracts/{c['id']}", headers=hdr(TENANT)).json()
    assert got["deposit_payment_method"] == "bank_transfer"


def test_patch_completes_a_draft(client):
    c = _create(client, terms=None)
    assert client.post(f"/api/contracts/{c['id']}/send", headers=hdr(LANDLORD)).status_code == 422

    r = client.patch(f"/api/contracts/{c['id']}", json={"terms": "Twelve month lease."}, headers=hdr(TENANT))
    assert r.status_code == 403

    r = client.patch(f"/api/contracts/{c['id']}", json={"terms": "Twelve month lease."}, headers=hdr(LANDLORD))
    assert r.status_code == 200, r.text
    assert r.json()["terms"] == "Twelve month lease."
    assert r.json()["monthly_rent"] == RENT

    r = client.post(f"/api/contracts/{c['id']}/send", headers=hdr(LANDLORD))
    assert r.status_code == 200
    assert r.json()["status"] == "sent_to_tenant"

    r = client.patch(f"/api/contracts/{c['id']}", json={"monthly_rent": 1}, headers=hdr(LANDLORD))
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"


def test_template_crud_over_http(client):
    rooms = [{"room": "Kitchen", "items": [{"name": "Oven"}]}]
    r = client.post("/api/checklists/templates", json={"name": "Flat", "rooms": rooms}, headers=hdr(LANDLORD))
    assert r.status_code == 201
    tpl = r.json()

    other = hdr(OTHER_LANDLORD)
    assert client.patch(f"/api/checklists/templates/{tpl['id']}", json={"name": "Mine"}, headers=other).status_code == 403
    assert client.delete(f"/api/checklists/templates/{tpl['id']}", headers=other).status_code == 403

    r = client.patch(
        f"/api/checklists/templates/{tpl['id']}",
        json={"name": "Flat v2", "property_type": "studio", "is_default": True},
        headers=hdr(LANDLORD),
    )
    assert r.status_code == 200
    assert r.json()["name"] == "Flat v2"
    assert r.json()["property_type"] == "studio"
    assert r.json()["rooms"] == rooms

    assert client.delete(f"/api/checklists/templates/{tpl['id']}", headers=hdr(LANDLORD)).status_code == 204
    assert client.get("/api/checklists/templates", headers=hdr(LANDLORD)).json() == []


def test_request_id_is_echoed_only_when_safe(client):
    r = client.get("/api/health", headers={"X-Request-ID": "req-42.a"})
    assert r.headers["X-Request-ID"] == "req-42.a"

    r = client.get("/api/health", headers={"X-Request-ID": "bad id with spaces"})
    assert r.headers["X-Request-ID"] != "bad id with spaces"
    assert len(r.headers["X-Request-ID"]) == 36
