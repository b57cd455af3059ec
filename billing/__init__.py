"""
Billing module - billing provider integration.

This module handles:
- Narrow snapshots of provider subscriptions, sessions and customers
- The billing provider capability and its Stripe adapter
- The billing state oracle consulted during verification
- Webhook signature verification
"""
