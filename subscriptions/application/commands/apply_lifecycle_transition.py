"""
ApplyLifecycleTransitionCommand.

Command to apply a lifecycle transition to an owner.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

from subscriptions.domain.transition import TransitionKind


@dataclass
class ApplyLifecycleTransitionCommand:
    """Command to apply a lifecycle transition."""

    owner_id: uuid.UUID
    kind: TransitionKind
    # checkout/change_plan take "plan_id"; cancel takes "immediate"
    params: Dict[str, Any] = field(default_factory=dict)
