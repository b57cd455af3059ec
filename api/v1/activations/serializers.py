"""
Serializers for activation API endpoints.
"""

from rest_framework import serializers


class VerifyActivationRequestSerializer(serializers.Serializer):
    """Serializer for verify activation request."""

    code = serializers.CharField(required=True, max_length=255, trim_whitespace=True)
    # Missing device ids are reported through the verdict, not as a 400
    device_id = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, max_length=255, default=""
    )


class VerdictResponseSerializer(serializers.Serializer):
    """Serializer for a verification verdict."""

    ok = serializers.BooleanField()
    reason = serializers.CharField(required=False)
    plan = serializers.CharField(required=False)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    device_id = serializers.CharField(required=False)
    redeemed_at = serializers.DateTimeField(required=False, allow_null=True)
    subscription_status = serializers.CharField(required=False)
