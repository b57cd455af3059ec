"""
Integration tests for owner subscription and plan endpoints.
"""

import uuid

import pytest
from django.core.cache import cache
from django.urls import reverse

from accounts.infrastructure.models import Owner as OwnerModel
from entitlements.domain.activation_code import generate_activation_code, hash_activation_code
from entitlements.infrastructure.models import Entitlement as EntitlementModel


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def lifetime_owner(db):
    owner = OwnerModel.objects.create(
        email="owner@example.com",
        external_customer_ref="cus_owner",
        plan="lifetime",
        subscription_status="active",
    )
    EntitlementModel.objects.create(
        email="owner@example.com",
        plan="lifetime",
        code_hash=hash_activation_code(generate_activation_code()),
        status="active",
        payment_event_ref="cs_lifetime",
        external_customer_ref="cus_owner",
    )
    return owner


def transition_url(owner_id):
    return reverse("apply-lifecycle-transition", kwargs={"owner_id": owner_id})


@pytest.mark.django_db
@pytest.mark.integration
class TestLifecycleTransitionAPI:
    """Integration tests for POST /api/v1/owners/{id}/transitions/."""

    def test_revoke_lifetime_owner(self, api_client, lifetime_owner):
        """Test revoke reaches lifetime entitlements without a billing provider."""
        response = api_client.post(
            transition_url(lifetime_owner.id), {"kind": "revoke"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["kind"] == "revoke"
        assert data["status"] == "completed"
        assert data["owner_id"] == str(lifetime_owner.id)
        assert EntitlementModel.objects.get(payment_event_ref="cs_lifetime").status == "revoked"
        lifetime_owner.refresh_from_db()
        assert lifetime_owner.plan is None
        assert lifetime_owner.subscription_status == "canceled"

    def test_unknown_owner(self, api_client):
        response = api_client.post(transition_url(uuid.uuid4()), {"kind": "revoke"}, format="json")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "OWNER_NOT_FOUND"

    def test_checkout_without_billing(self, api_client, lifetime_owner):
        response = api_client.post(
            transition_url(lifetime_owner.id),
            {"kind": "checkout", "plan_id": "monthly"},
            format="json",
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "NO_BILLING_CONFIG"

    def test_plan_required_for_change(self, api_client, lifetime_owner):
        response = api_client.post(
            transition_url(lifetime_owner.id), {"kind": "change_plan"}, format="json"
        )

        assert response.status_code == 400
        assert "plan_id" in response.json()["error"]

    def test_unknown_kind(self, api_client, lifetime_owner):
        response = api_client.post(
            transition_url(lifetime_owner.id), {"kind": "pause"}, format="json"
        )
        assert response.status_code == 400

    def test_invalid_transition(self, api_client, db):
        """Test revoking an owner with nothing to revoke is a client error."""
        owner = OwnerModel.objects.create(email="free@example.com")

        response = api_client.post(transition_url(owner.id), {"kind": "revoke"}, format="json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"


@pytest.mark.django_db
@pytest.mark.integration
class TestSubscriptionStatusAPI:
    def test_status_without_subscription(self, api_client):
        owner = OwnerModel.objects.create(email="free@example.com")

        response = api_client.get(
            reverse("get-subscription-status", kwargs={"owner_id": owner.id})
        )

        assert response.status_code == 200
        data = response.json()
        assert data["owner_id"] == str(owner.id)
        assert data["plan"] is None
        assert data["service_enabled"] is True


@pytest.mark.django_db
@pytest.mark.integration
class TestPlanListAPI:
    def test_list_plans(self, api_client):
        response = api_client.get(reverse("list-plans"))

        assert response.status_code == 200
        plans = {plan["id"]: plan for plan in response.json()}
        assert set(plans) == {"monthly", "lifetime"}
        assert plans["monthly"]["recurring"] is True
        assert plans["lifetime"]["duration_days"] is None
        assert plans["lifetime"]["price"] == "120.00"
