"""
Serializers for owner subscription API endpoints.
"""

from rest_framework import serializers

from core.domain.value_objects import Plan
from subscriptions.domain.transition import TransitionKind


class LifecycleTransitionRequestSerializer(serializers.Serializer):
    """Serializer for a lifecycle transition request."""

    kind = serializers.ChoiceField(choices=[kind.value for kind in TransitionKind])
    plan_id = serializers.ChoiceField(choices=[plan.value for plan in Plan], required=False)
    immediate = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs["kind"] in (TransitionKind.CHECKOUT.value, TransitionKind.CHANGE_PLAN.value):
            if not attrs.get("plan_id"):
                raise serializers.ValidationError({"plan_id": "This field is required for this transition."})
        return attrs


class LifecycleOutcomeSerializer(serializers.Serializer):
    """Serializer for a lifecycle transition outcome."""

    kind = serializers.CharField()
    owner_id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=["completed", "checkout_required", "scheduled"])
    message = serializers.CharField()
    affected = serializers.IntegerField()
    plan = serializers.CharField(allow_null=True)
    subscription_status = serializers.CharField(allow_null=True)
    current_period_end = serializers.DateTimeField(allow_null=True)
    cancel_at_period_end = serializers.BooleanField(allow_null=True)
    checkout_url = serializers.URLField(allow_null=True)
    session_ref = serializers.CharField(allow_null=True)
    price_difference = serializers.DecimalField(max_digits=10, decimal_places=2, allow_null=True)


class SubscriptionStatusSerializer(serializers.Serializer):
    """Serializer for an owner's subscription status."""

    owner_id = serializers.UUIDField()
    plan = serializers.CharField(allow_null=True)
    status = serializers.CharField(allow_null=True)
    current_period_start = serializers.DateTimeField(allow_null=True)
    current_period_end = serializers.DateTimeField(allow_null=True)
    subscription_ref = serializers.CharField(allow_null=True)
    service_enabled = serializers.BooleanField()
    cancel_at_period_end = serializers.BooleanField()
