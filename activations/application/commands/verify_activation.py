"""
VerifyActivationCommand.

Command to verify an activation code on a device.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class VerifyActivationCommand:
    """Command to verify an activation code for a device."""

    code: Optional[str]
    device_id: Optional[str]
