"""Database module for the URL shortener application."""
from app.db.base import engine, get_session
from app.db.session import get_db, db_transaction, SessionManager
from app.db.resilience import check_database, initialize_database_connection

__all__ = [
    "engine",
    "get_session",
    "get_db",
    "db_transaction",
    "SessionManager",
    "check_database",
    "initialize_database_connection",
]
