"""
Webhooks module - billing provider webhook intake.

This module handles:
- Routing verified billing events to lifecycle and entitlement handlers
- The processed-event ledger that makes redelivery harmless
"""
