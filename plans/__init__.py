"""
Plans module - plan catalog.

Maps plan identifiers to label, duration and price. Prices can be
overridden per plan from the database.
"""
