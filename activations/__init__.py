"""
Activations module - activation code verification.

This module handles:
- Reconciling an entitlement against its billing source of truth
- First-use device binding
- Verdicts reported to client applications
"""
