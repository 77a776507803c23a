"""
Database package for commguard.

Provides the single-connection manager, schema creation and a TTL query cache.

Public API:
    - ConnectionManager / db_connection: connection lifecycle, reads and serialised transactions
    - SchemaManager: table and index creation
    - DatabaseQueryCache: TTL cache for hot reads
"""
