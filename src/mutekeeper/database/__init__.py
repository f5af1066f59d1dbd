"""
Database package for Mutekeeper.

Public API:
    - db_connection: process-wide ConnectionManager singleton
    - SchemaManager: idempotent table/index creation
    - initialize_database: open the connection and create the schema
"""

from mutekeeper.database.db_connection import ConnectionManager, db_connection
from mutekeeper.database.db_schema import SchemaManager, initialize_database

__all__ = ["ConnectionManager", "SchemaManager", "db_connection", "initialize_database"]
