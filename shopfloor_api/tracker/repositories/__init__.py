"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for routing master data, operators and
production execution records. Guarded state transitions are expressed as
compare-and-swap UPDATE statements that report whether they matched a row.
"""
