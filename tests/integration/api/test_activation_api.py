"""
Integration tests for the activation verification endpoint.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from entitlements.domain.activation_code import generate_activation_code, hash_activation_code
from entitlements.infrastructure.models import Entitlement as EntitlementModel


@pytest.fixture
def stored_code(db):
    """Store an active monthly entitlement and return its plaintext code."""
    code = generate_activation_code()
    EntitlementModel.objects.create(
        email="buyer@example.com",
        plan="monthly",
        code_hash=hash_activation_code(code),
        status="active",
        expires_at=timezone.now() + timedelta(days=20),
        payment_event_ref="cs_api_1",
        external_session_ref="cs_api_1",
    )
    return code


@pytest.mark.django_db
@pytest.mark.integration
class TestVerifyActivationAPI:
    """Integration tests for POST /api/v1/activations/verify/."""

    def test_first_use_binds_device(self, api_client, stored_code):
        """Test the first verification binds the calling device."""
        url = reverse("verify-activation")

        response = api_client.post(
            url, {"code": stored_code, "device_id": "laptop-1"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["plan"] == "monthly"
        assert data["device_id"] == "laptop-1"
        assert data["redeemed_at"] is not None
        model = EntitlementModel.objects.get(payment_event_ref="cs_api_1")
        assert model.redeemed_device_id == "laptop-1"

    def test_other_device_refused(self, api_client, stored_code):
        url = reverse("verify-activation")
        api_client.post(url, {"code": stored_code, "device_id": "laptop-1"}, format="json")

        again = api_client.post(
            url, {"code": stored_code.lower(), "device_id": "laptop-1"}, format="json"
        )
        other = api_client.post(url, {"code": stored_code, "device_id": "phone"}, format="json")

        assert again.json()["ok"] is True
        assert other.status_code == 200
        assert other.json() == {"ok": False, "reason": "device_mismatch"}

    def test_hash_accepted_as_code(self, api_client, stored_code):
        response = api_client.post(
            reverse("verify-activation"),
            {"code": hash_activation_code(stored_code), "device_id": "laptop-1"},
            format="json",
        )
        assert response.json()["ok"] is True

    def test_unknown_code(self, api_client):
        response = api_client.post(
            reverse("verify-activation"),
            {"code": "NOSUCHCODE000000", "device_id": "laptop-1"},
            format="json",
        )

        assert response.status_code == 200
        assert response.json() == {"ok": False, "reason": "not_found"}

    def test_missing_device_is_a_verdict(self, api_client, stored_code):
        response = api_client.post(
            reverse("verify-activation"), {"code": stored_code}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["reason"] == "device_required"

    def test_missing_code_is_bad_request(self, api_client):
        response = api_client.post(
            reverse("verify-activation"), {"device_id": "laptop-1"}, format="json"
        )

        assert response.status_code == 400
        assert "code" in response.json()["error"]

    def test_rate_limit_headers(self, api_client, stored_code):
        response = api_client.post(
            reverse("verify-activation"),
            {"code": stored_code, "device_id": "laptop-1"},
            format="json",
        )
        assert response["X-RateLimit-Limit"] == "1000"
