"""
Storage layer: SQLite schema, record models and the persistence gateway.
"""
