"""
Entitlement DTOs for API responses.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from entitlements.domain.entitlement import Entitlement


@dataclass
class EntitlementDTO:
    """DTO for entitlement information."""

    id: uuid.UUID
    email: str
    plan: str
    status: str
    code_reference: Optional[str]
    expires_at: Optional[datetime]
    subscription_status: str
    created_at: datetime

    @classmethod
    def from_entity(cls, entitlement: Entitlement) -> "EntitlementDTO":
        return cls(
            id=entitlement.id,
            email=str(entitlement.email),
            plan=entitlement.plan.value,
            status=entitlement.status.value,
            code_reference=entitlement.code_hash,
            expires_at=entitlement.expires_at,
            subscription_status=entitlement.subscription_status_view(),
            created_at=entitlement.created_at,
        )
