"""HTTP Routes — end-to-end request handling through the FastAPI app.

Tests cover:
    - Health probes
    - Caller identity required; admin routes refuse non-admins
    - Verification submit/status/checkout with public statuses only
    - Admin decision endpoint, including 400 for reject without reason
    - Entitlement purchase, grant, cancel and capability read model
    - Listing ranking
    - Webhook signature check and event application
    - Sweep trigger: bearer secret required, fails closed without one
"""

from types import SimpleNamespace

from badgeledger.config import Settings, get_settings
from badgeledger.main import app

from tests.services.conftest import CRON_SECRET, VALID_SIGNATURE
from tests.services.provider_events import (
    as_payload, checkout_completed, entitlement_metadata,
)

USER = {"X-Actor-Id": "u1"}
SELLER = {"X-Actor-Id": "s1"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}
SELLER_BODY = {"documents": [
    {"type": "drivers_license", "ref": "uploads/s1/dl.jpg"},
    {"type": "business_license", "ref": "uploads/s1/bl.pdf"},
]}


# ─── Health ──────────────────────────────────────────────────────

async def test_health_liveness(client):
    res = await client.get("/api/v1/health/")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


async def test_health_readiness(client):
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.json()["checks"] == {"database": "ok", "services": "ok"}


async def test_not_ready_without_services(client):
    app.state.services = None
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 503
    assert res.json()["checks"]["services"] == "failing"


# ─── Verification ────────────────────────────────────────────────

async def test_submit_requires_identity(client):
    res = await client.post("/api/v1/verification/buyer/submit", json={
        "documents": [{"type": "passport", "ref": "p"}],
    })
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "FORBIDDEN"


async def test_buyer_submit_returns_checkout(client):
    res = await client.post(
        "/api/v1/verification/buyer/submit",
        json={"documents": [{"type": "passport", "ref": "uploads/u1/p.jpg"}]},
        headers=USER,
    )
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "payment_required"
    assert body["checkout_url"].startswith("https://pay.test/")


async def test_seller_status_hides_internal_review_state(client):
    await client.post("/api/v1/verification/seller/submit", json=SELLER_BODY, headers=SELLER)

    res = await client.get("/api/v1/verification/seller/status", headers=SELLER)

    assert res.status_code == 200
    assert res.json()["status"] == "under_review"
    assert res.json()["verified"] is False


async def test_status_without_case(client):
    res = await client.get("/api/v1/verification/contractor/status", headers=USER)
    assert res.json() == {"status": "not_started", "verified": False, "case": None}


async def test_submit_missing_documents_is_400(client):
    res = await client.post(
        "/api/v1/verification/seller/submit",
        json={"documents": [{"type": "drivers_license", "ref": "x"}]},
        headers=SELLER,
    )
    assert res.status_code == 400
    assert res.json()["error"]["details"][0]["type"] == "missing_document"


async def test_unknown_document_type_is_400(client):
    res = await client.post(
        "/api/v1/verification/buyer/submit",
        json={"documents": [{"type": "library_card", "ref": "x"}]},
        headers=USER,
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_duplicate_submit_is_409(client):
    await client.post("/api/v1/verification/seller/submit", json=SELLER_BODY, headers=SELLER)
    res = await client.post(
        "/api/v1/verification/seller/submit", json=SELLER_BODY, headers=SELLER,
    )
    assert res.status_code == 409


async def test_checkout_without_payable_case_is_409(client):
    res = await client.post("/api/v1/verification/buyer/checkout", headers=USER)
    assert res.status_code == 409


# ─── Admin verification ──────────────────────────────────────────

async def test_admin_routes_refuse_users(client):
    res = await client.get("/api/v1/admin/verification/cases", headers=USER)
    assert res.status_code == 403


async def test_admin_approves_seller(client):
    submitted = await client.post(
        "/api/v1/verification/seller/submit", json=SELLER_BODY, headers=SELLER,
    )
    case_id = submitted.json()["id"]

    queue = await client.get(
        "/api/v1/admin/verification/cases",
        params={"status": "pending_admin"},
        headers=ADMIN,
    )
    assert [c["id"] for c in queue.json()] == [case_id]

    res = await client.post(
        f"/api/v1/admin/verification/cases/{case_id}/decision",
        json={"action": "approve", "notes": "All good"},
        headers=ADMIN,
    )
    assert res.status_code == 200
    assert res.json()["case"]["status"] == "pending_payment"
    assert res.json()["checkout_url"] is not None


async def test_reject_without_reason_is_400(client):
    submitted = await client.post(
        "/api/v1/verification/seller/submit", json=SELLER_BODY, headers=SELLER,
    )
    res = await client.post(
        f"/api/v1/admin/verification/cases/{submitted.json()['id']}/decision",
        json={"action": "reject"},
        headers=ADMIN,
    )
    assert res.status_code == 400


async def test_invalid_admin_transition_is_409(client):
    submitted = await client.post(
        "/api/v1/verification/seller/submit", json=SELLER_BODY, headers=SELLER,
    )
    res = await client.post(
        f"/api/v1/admin/verification/cases/{submitted.json()['id']}/decision",
        json={"action": "revoke", "reason": "test"},
        headers=ADMIN,
    )
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "INVALID_TRANSITION"


async def test_unknown_case_is_404(client):
    res = await client.get(
        "/api/v1/admin/verification/cases/00000000-0000-0000-0000-000000000000",
        headers=ADMIN,
    )
    assert res.status_code == 404


# ─── Entitlements & capabilities ─────────────────────────────────

async def test_purchase_returns_checkout(client):
    res = await client.post(
        "/api/v1/entitlements/purchases",
        json={"target_id": "L1", "tier": "premium"},
        headers=USER,
    )
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "pending"
    assert body["amount_cents"] == 4900
    assert body["checkout_url"].startswith("https://pay.test/")


async def test_grant_then_read_capabilities(client):
    res = await client.post(
        "/api/v1/admin/entitlements/grants",
        json={"owner_id": "o1", "target_id": "L9", "tier": "elite"},
        headers=ADMIN,
    )
    assert res.status_code == 201

    caps = await client.get("/api/v1/targets/L9/capabilities")
    body = caps.json()
    assert body["flags"]["elite"]["active"] is True
    assert body["flags"]["featured"]["active"] is True
    assert body["live"]["premium"] is True
    assert body["live"]["spec_sheet"] is False


async def test_grant_requires_admin(client):
    res = await client.post(
        "/api/v1/admin/entitlements/grants",
        json={"owner_id": "o1", "target_id": "L9", "tier": "elite"},
        headers=USER,
    )
    assert res.status_code == 403


async def test_cancel_clears_capabilities(client):
    granted = await client.post(
        "/api/v1/admin/entitlements/grants",
        json={"owner_id": "o1", "target_id": "L9", "tier": "featured"},
        headers=ADMIN,
    )
    res = await client.post(
        f"/api/v1/admin/entitlements/purchases/{granted.json()['id']}/cancel",
        json={"reason": "Policy violation"},
        headers=ADMIN,
    )
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"

    caps = await client.get("/api/v1/targets/L9/capabilities")
    assert caps.json()["flags"]["featured"]["active"] is False


async def test_capabilities_of_unknown_target_all_off(client):
    res = await client.get("/api/v1/targets/nobody/capabilities")
    assert res.status_code == 200
    assert all(not f["active"] for f in res.json()["flags"].values())


async def test_rank_listings(client):
    await client.post(
        "/api/v1/admin/entitlements/grants",
        json={"owner_id": "o1", "target_id": "B", "tier": "premium"},
        headers=ADMIN,
    )
    res = await client.post("/api/v1/listings/rank", json={"listings": [
        {"listing_id": "A", "created_at": "2026-01-02T00:00:00Z"},
        {"listing_id": "B", "created_at": "2026-01-01T00:00:00Z"},
        {"listing_id": "C", "created_at": "2026-01-03T00:00:00Z"},
    ]})
    assert res.status_code == 200
    ranked = res.json()["listings"]
    assert [r["listing_id"] for r in ranked] == ["B", "C", "A"]
    assert ranked[0]["score"] == 500


# ─── Webhook ─────────────────────────────────────────────────────

async def test_webhook_bad_signature_is_400(client):
    res = await client.post(
        "/api/v1/payments/webhook",
        content=b'{"id": "evt_1"}',
        headers={"Stripe-Signature": "forged"},
    )
    assert res.status_code == 400


async def test_webhook_activates_purchase(client):
    created = await client.post(
        "/api/v1/entitlements/purchases",
        json={"target_id": "L5", "tier": "spec_sheet"},
        headers=USER,
    )

    purchase = SimpleNamespace(**created.json())
    event = checkout_completed("evt_route_1", entitlement_metadata(purchase))
    res = await client.post(
        "/api/v1/payments/webhook",
        content=as_payload(event),
        headers={"Stripe-Signature": VALID_SIGNATURE},
    )
    assert res.status_code == 200
    assert res.json() == {"received": True, "outcome": "applied"}

    caps = await client.get("/api/v1/targets/L5/capabilities")
    assert caps.json()["flags"]["spec_sheet"]["active"] is True


# ─── Sweep trigger ───────────────────────────────────────────────

async def test_sweep_requires_secret(client):
    res = await client.post("/api/v1/cron/sweep")
    assert res.status_code == 403


async def test_sweep_rejects_wrong_secret(client):
    res = await client.get(
        "/api/v1/cron/sweep", headers={"Authorization": "Bearer wrong"},
    )
    assert res.status_code == 403


async def test_sweep_with_secret_returns_counts(client):
    for method in ("GET", "POST"):
        res = await client.request(
            method, "/api/v1/cron/sweep",
            headers={"Authorization": f"Bearer {CRON_SECRET}"},
        )
        assert res.status_code == 200
        assert res.json() == {"processed": 0, "errors": 0, "total": 0}


async def test_sweep_fails_closed_without_configured_secret(client):
    app.dependency_overrides[get_settings] = lambda: Settings(cron_secret=None)
    res = await client.post(
        "/api/v1/cron/sweep", headers={"Authorization": "Bearer "},
    )
    assert res.status_code == 403
