"""
Subscriptions app - owner billing lifecycle and its entitlement cascades.
"""
