"""
db/ - Database Layer
====================
Handles PostgreSQL connections, transactions, schema initialization and
the storage error hierarchy.
This layer is the lowest in the architecture and has no dependencies on other layers.
"""
