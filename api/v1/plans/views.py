"""
Plan catalog API views.
"""

from asgiref.sync import async_to_sync
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from api.v1.plans.serializers import PlanSerializer
from core.infrastructure.wiring import build_plan_catalog


class PlanListView(APIView):
    """View listing purchasable plans."""

    @extend_schema(
        operation_id="list_plans",
        summary="List Plans",
        description="Return every plan with its current price.",
        tags=["Plans"],
        responses={200: PlanSerializer(many=True)},
    )
    def get(self, request: Request) -> Response:
        plans = async_to_sync(build_plan_catalog().list_plans)()
        return Response(PlanSerializer(plans, many=True).data, status=status.HTTP_200_OK)
