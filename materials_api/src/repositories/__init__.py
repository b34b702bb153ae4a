"""
Repositories encapsulate SQLAlchemy data access for each aggregate.

They never commit; services own transaction boundaries.
"""
