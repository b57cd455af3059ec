"""
GetSubscriptionStatusQuery.

Query for an owner's current subscription.
"""

import uuid
from dataclasses import dataclass


@dataclass
class GetSubscriptionStatusQuery:
    """Query for an owner's subscription status."""

    owner_id: uuid.UUID
