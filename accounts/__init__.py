"""
Accounts module - owner accounts.

An owner holds at most one billing relationship and is the root from
which an entitlement group is discovered during lifecycle transitions.
"""
