"""Database module for persisted download state.

Provides:
- SQLAlchemy ORM model (DownloadRecord)
- Repository interface and implementation
- Factory function for creating repositories
"""

from .factory import create_repository
from .models import Base, DownloadRecord
from .repository import (
    DownloadStateRepositoryInterface,
    SQLAlchemyDownloadStateRepository,
)

__all__ = [
    "Base",
    "DownloadRecord",
    "DownloadStateRepositoryInterface",
    "SQLAlchemyDownloadStateRepository",
    "create_repository",
]
