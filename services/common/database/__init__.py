"""Database connection and utilities."""

from .mongodb import connect_to_mongo, get_database, get_collection, close_database_connection

__all__ = ["connect_to_mongo", "get_database", "get_collection", "close_database_connection"]
