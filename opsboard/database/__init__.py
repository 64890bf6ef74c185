"""
Database Module
"""
from .connection import (
    close_database,
    get_session_factory,
    init_database,
)
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "get_session_factory",
    "Base",
]
