"""
Serializers for payment API endpoints.
"""

from rest_framework import serializers


class EntitlementDTOSerializer(serializers.Serializer):
    """Serializer for EntitlementDTO."""

    id = serializers.UUIDField()
    email = serializers.EmailField()
    plan = serializers.CharField()
    status = serializers.CharField()
    code_reference = serializers.CharField(allow_null=True)
    expires_at = serializers.DateTimeField(allow_null=True)
    subscription_status = serializers.CharField()
    created_at = serializers.DateTimeField()


class WebhookReceiptSerializer(serializers.Serializer):
    """Serializer for a webhook receipt."""

    received = serializers.BooleanField()
    result = serializers.ChoiceField(choices=["processed", "duplicate", "ignored"])
