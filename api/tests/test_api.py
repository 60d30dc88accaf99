"""
HTTP tests for the referral rewards API.

Tests cover:
1. Identity header handling and admin-only routes
2. End-to-end partner flow: submit, approve, issue, redeem, fulfil
3. Customer credit flow and denial
4. Error mapping to status codes
"""

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from conftest import ADMIN_ID, CUSTOMER_ID, PARTNER_ID
from core.config import Settings

PREFIX = "/api/v1"


def headers(user_id, **extra):
    return {"X-User-Id": str(user_id), **extra}


@pytest.fixture
def client():
    settings = Settings(ADMIN_USER_IDS=str(ADMIN_ID), SEED_DEMO_DATA=True, LOG_LEVEL="WARNING")
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def partner(client):
    response = client.patch(
        f"{PREFIX}/me",
        json={"full_name": "Pat Partner", "account_type": "partner"},
        headers=headers(PARTNER_ID),
    )
    assert response.status_code == 200
    return PARTNER_ID


def submit_and_approve(client, user_id):
    response = client.post(
        f"{PREFIX}/referrals",
        json={"referred_name": "Jane Referred", "referred_email": "jane@example.com"},
        headers=headers(user_id),
    )
    assert response.status_code == 201
    referral_id = response.json()["id"]
    response = client.post(
        f"{PREFIX}/admin/referrals/{referral_id}/status",
        json={"status": "Approved"},
        headers=headers(ADMIN_ID),
    )
    assert response.status_code == 200
    return referral_id


class TestIdentity:
    """Tests for the identity boundary."""

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_identity_rejected(self, client):
        response = client.post(f"{PREFIX}/referrals", json={"referred_name": "Jane"})
        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"

    def test_malformed_identity_rejected(self, client):
        response = client.get(f"{PREFIX}/me", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 401

    def test_first_request_creates_profile(self, client):
        response = client.get(f"{PREFIX}/me", headers=headers(CUSTOMER_ID))
        assert response.status_code == 200
        assert response.json()["account_type"] == "customer"
        assert response.json()["is_admin"] is False

    def test_admin_routes_forbidden_to_users(self, client):
        response = client.get(f"{PREFIX}/admin/referrals", headers=headers(CUSTOMER_ID))
        assert response.status_code == 403

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestPartnerFlow:
    """Submit, issue points, redeem and fulfil over HTTP."""

    def test_issue_and_redeem(self, client, partner):
        referral_id = submit_and_approve(client, partner)

        issued = client.post(
            f"{PREFIX}/admin/referrals/{referral_id}/issue",
            json={"job_type": "Replacement", "invoice_number": "INV-9", "invoice_total": "12500.00"},
            headers=headers(ADMIN_ID, **{"Idempotency-Key": "issue-9"}),
        )
        assert issued.status_code == 201
        body = issued.json()
        assert body["referral"]["status"] == "Eligible"
        assert body["ledger_entry"]["currency_type"] == "POINTS"
        assert float(body["ledger_entry"]["amount"]) == 250

        retried = client.post(
            f"{PREFIX}/admin/referrals/{referral_id}/issue",
            json={"job_type": "Replacement", "invoice_number": "INV-9", "invoice_total": "12500.00"},
            headers=headers(ADMIN_ID, **{"Idempotency-Key": "issue-9"}),
        )
        assert retried.status_code == 201
        assert retried.json()["ledger_entry"]["id"] == body["ledger_entry"]["id"]

        item = client.post(
            f"{PREFIX}/admin/catalog",
            json={"name": "Yard Sign Printing Credit", "points_cost": 250},
            headers=headers(ADMIN_ID),
        ).json()

        catalog = client.get(f"{PREFIX}/catalog", headers=headers(partner)).json()
        assert [i["id"] for i in catalog] == [item["id"]]

        requested = client.post(
            f"{PREFIX}/redemptions", json={"catalog_item_id": item["id"]}, headers=headers(partner),
        )
        assert requested.status_code == 201
        request_id = requested.json()["id"]

        fulfilled = client.post(
            f"{PREFIX}/admin/redemptions/{request_id}/fulfill",
            json={"fulfillment_reference": "Vendor invoice 77"},
            headers=headers(ADMIN_ID),
        )
        assert fulfilled.status_code == 200
        assert fulfilled.json()["redemption"]["status"] == "Fulfilled"

        again = client.post(f"{PREFIX}/admin/redemptions/{request_id}/fulfill", headers=headers(ADMIN_ID))
        assert again.status_code == 409

        balance = client.get(f"{PREFIX}/me/balance", headers=headers(partner)).json()
        points = next(b for b in balance["balances"] if b["currency_type"] == "POINTS")
        assert float(points["balance"]) == 0

        reconcile = client.get(
            f"{PREFIX}/admin/users/{partner}/reconcile", params={"currency": "POINTS"}, headers=headers(ADMIN_ID),
        )
        assert reconcile.json()["in_sync"] is True

    def test_redeem_without_points(self, client, partner):
        item = client.post(
            f"{PREFIX}/admin/catalog",
            json={"name": "Business Cards", "points_cost": 100},
            headers=headers(ADMIN_ID),
        ).json()

        response = client.post(
            f"{PREFIX}/redemptions", json={"catalog_item_id": item["id"]}, headers=headers(partner),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "InsufficientBalanceError"

    def test_blank_catalog_name(self, client):
        response = client.post(
            f"{PREFIX}/admin/catalog", json={"name": "", "points_cost": 100}, headers=headers(ADMIN_ID),
        )
        assert response.status_code == 422
        assert response.json()["message"] == "Catalog name required."


class TestCustomerFlow:
    """Customer referrals pay cash or credit."""

    def test_credit_preference(self, client):
        client.put(
            f"{PREFIX}/me/payout-preference", json={"payout_preference": "credit"}, headers=headers(CUSTOMER_ID),
        )
        referral_id = submit_and_approve(client, CUSTOMER_ID)

        issued = client.post(
            f"{PREFIX}/admin/referrals/{referral_id}/issue",
            json={"job_type": "Repair"},
            headers=headers(ADMIN_ID),
        )

        assert issued.status_code == 201
        entry = issued.json()["ledger_entry"]
        assert entry["currency_type"] == "USD_CREDIT"
        assert entry["entry_type"] == "EarnedCredit"

        ledger = client.get(f"{PREFIX}/me/ledger", headers=headers(CUSTOMER_ID)).json()
        assert ledger["total_count"] == 1

    def test_deny_without_reason(self, client):
        referral_id = submit_and_approve(client, CUSTOMER_ID)

        denied = client.post(f"{PREFIX}/admin/referrals/{referral_id}/deny", headers=headers(ADMIN_ID))

        assert denied.status_code == 200
        assert denied.json()["status"] == "Denied"
        assert denied.json()["denied_reason"] == "Denied"

    def test_illegal_transition_conflict(self, client):
        referral_id = submit_and_approve(client, CUSTOMER_ID)

        response = client.post(
            f"{PREFIX}/admin/referrals/{referral_id}/status",
            json={"status": "Submitted"},
            headers=headers(ADMIN_ID),
        )
        assert response.status_code == 409

        overridden = client.post(
            f"{PREFIX}/admin/referrals/{referral_id}/status",
            json={"status": "Submitted", "override": True, "reason": "Approved too early"},
            headers=headers(ADMIN_ID),
        )
        assert overridden.status_code == 200

        history = client.get(f"{PREFIX}/referrals/{referral_id}/history", headers=headers(CUSTOMER_ID)).json()
        assert history[-1]["override"] is True

    def test_missing_rule_is_not_found(self, client):
        referral_id = submit_and_approve(client, CUSTOMER_ID)
        rules = client.get(
            f"{PREFIX}/admin/reward-rules",
            params={"program_type": "customer", "event_type": "VIP_RENEWAL"},
            headers=headers(ADMIN_ID),
        ).json()
        for rule in rules:
            client.post(f"{PREFIX}/admin/reward-rules/{rule['id']}/deactivate", headers=headers(ADMIN_ID))

        response = client.post(
            f"{PREFIX}/admin/referrals/{referral_id}/issue",
            json={"job_type": "VIP_RENEWAL"},
            headers=headers(ADMIN_ID),
        )

        assert response.status_code == 404
        referral = client.get(f"{PREFIX}/referrals/{referral_id}", headers=headers(CUSTOMER_ID)).json()
        assert referral["status"] == "Approved"
        assert client.get(f"{PREFIX}/referrals/{referral_id}/jobs", headers=headers(CUSTOMER_ID)).json() == []


class TestRewardRulesApi:
    def test_resolve_uses_latest_rule(self, client):
        created = client.post(
            f"{PREFIX}/admin/reward-rules",
            json={"program_type": "partner", "event_type": "Repair", "amount": "150", "effective_from": "2024-06-01"},
            headers=headers(ADMIN_ID),
        )
        assert created.status_code == 201

        resolved = client.get(
            f"{PREFIX}/reward-rules/resolve",
            params={"program_type": "partner", "event_type": "Repair", "as_of": "2024-07-01"},
            headers=headers(PARTNER_ID),
        )
        assert resolved.status_code == 200
        assert float(resolved.json()["amount"]) == 150
