# backend/treatbook/repositories/__init__.py
"""
Repository layer for Treatbook.

Repositories wrap SQLAlchemy queries and never commit; services own the
unit of work.
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "RepositoryFactory"]
