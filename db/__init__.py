"""
db/ - Database Layer
====================
PostgreSQL connection pool and schema for the invoice store.
Only config and utils are imported here; repositories build on top of it.
"""
