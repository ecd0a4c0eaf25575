"""
Database connections for BeatWatch.

- PostgreSQL: system of record (via SQLAlchemy)
- Firestore: realtime live-monitoring projection (optional, via google-cloud-firestore)
"""

from .postgres import Base, init_db, get_db_session, close_db_session, rollback_session
from .firestore import get_firestore_client, firestore_enabled

__all__ = [
    "Base",
    "init_db",
    "get_db_session",
    "close_db_session",
    "rollback_session",
    "get_firestore_client",
    "firestore_enabled",
]
