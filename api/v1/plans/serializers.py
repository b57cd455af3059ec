"""
Serializers for plan catalog endpoints.
"""

from rest_framework import serializers


class PlanSerializer(serializers.Serializer):
    """Serializer for a plan definition."""

    id = serializers.SerializerMethodField()
    label = serializers.CharField()
    description = serializers.CharField()
    duration_days = serializers.IntegerField(allow_null=True)
    price = serializers.DecimalField(max_digits=10, decimal_places=2)
    recurring = serializers.BooleanField()

    def get_id(self, plan) -> str:
        return plan.id.value
