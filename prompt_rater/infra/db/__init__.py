"""
Database infrastructure layer.

Provides SQLAlchemy models, session management, and repositories.
"""
from prompt_rater.infra.db.base import Base
from prompt_rater.infra.db.session import async_session_factory, engine, get_db

__all__ = [
    "Base",
    "engine",
    "async_session_factory",
    "get_db",
]
