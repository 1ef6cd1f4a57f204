# posauth Core Module
from .config import get_settings, settings
from .database import Base, async_session_maker, dispose_engine, engine, get_db, ping_database
from .logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "ping_database",
    "dispose_engine",
]
