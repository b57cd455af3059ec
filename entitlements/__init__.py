"""
Entitlements module - activation codes and entitlement records.

This module handles:
- Activation code generation and hashing
- Entitlement record entity and persistence
- Idempotent entitlement creation from payment events
- Activation notices sent to customers
"""
