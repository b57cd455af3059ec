"""
ConfirmPaymentSessionCommand.

Command to confirm a completed one-time checkout session.
"""

from dataclasses import dataclass


@dataclass
class ConfirmPaymentSessionCommand:
    """Command to confirm a checkout session and issue its entitlement."""

    session_ref: str
