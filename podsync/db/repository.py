"""Repository pattern implementation for persisted download state.

Provides an abstract interface and SQLAlchemy implementation. The sync
engine reads the downloaded GUIDs of a podcast before computing eligibility
and marks each episode once its pipeline has completed.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Optional, Set

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .models import Base, DownloadRecord

logger = logging.getLogger(__name__)


class DownloadStateRepositoryInterface(ABC):
    """Abstract interface for download state persistence."""

    @abstractmethod
    def downloaded_guids(self, podcast_name: str) -> Set[str]:
        """
        Return the GUIDs of every episode marked downloaded for a podcast.

        Parameters:
            podcast_name (str): Configured podcast name.

        Returns:
            Set[str]: GUIDs already downloaded; empty if none.
        """
        pass

    @abstractmethod
    def is_downloaded(self, podcast_name: str, guid: str) -> bool:
        """Check whether a single episode is marked downloaded."""
        pass

    @abstractmethod
    def mark_downloaded(self, podcast_name: str, guid: str, path: str) -> DownloadRecord:
        """
        Mark an episode downloaded, recording where its file was written.

        Marking an already-downloaded episode updates its path and timestamp.

        Returns:
            DownloadRecord: The stored record.
        """
        pass

    @abstractmethod
    def count_downloaded(self, podcast_name: Optional[str] = None) -> Dict[str, int]:
        """
        Count downloaded episodes per podcast.

        Parameters:
            podcast_name (Optional[str]): Restrict the count to one podcast.

        Returns:
            Dict[str, int]: Mapping of podcast name to downloaded episode count.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Dispose the engine and release its connections."""
        pass


class SQLAlchemyDownloadStateRepository(DownloadStateRepositoryInterface):
    """SQLAlchemy-based implementation of the download state repository.

    Tables are created on first use.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the repository and configure its engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
        """
        self.database_url = database_url

        if database_url.startswith("sqlite"):
            database = make_url(database_url).database
            if database and database != ":memory:":
                Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(database_url, echo=echo)

        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        logger.debug(
            f"Database initialized: "
            f"{database_url.split('@')[-1] if '@' in database_url else database_url}"
        )

    def _get_session(self) -> Session:
        return self.SessionLocal()

    def downloaded_guids(self, podcast_name: str) -> Set[str]:
        with self._get_session() as session:
            stmt = select(DownloadRecord.guid).where(
                DownloadRecord.podcast_name == podcast_name
            )
            return set(session.scalars(stmt))

    def is_downloaded(self, podcast_name: str, guid: str) -> bool:
        with self._get_session() as session:
            stmt = select(DownloadRecord.id).where(
                DownloadRecord.podcast_name == podcast_name,
                DownloadRecord.guid == guid,
            )
            return session.scalar(stmt) is not None

    def mark_downloaded(self, podcast_name: str, guid: str, path: str) -> DownloadRecord:
        with self._get_session() as session:
            stmt = select(DownloadRecord).where(
                DownloadRecord.podcast_name == podcast_name,
                DownloadRecord.guid == guid,
            )
            record = session.scalar(stmt)

            if record is None:
                record = DownloadRecord(podcast_name=podcast_name, guid=guid, path=path)
                session.add(record)
            else:
                record.path = path
                record.downloaded_at = datetime.now(UTC)

            try:
                session.commit()
            except IntegrityError:
                # Another writer marked the same episode first
                session.rollback()
                record = session.scalar(stmt)

            logger.debug(f"[{podcast_name}] Marked downloaded: {guid}")
            return record

    def count_downloaded(self, podcast_name: Optional[str] = None) -> Dict[str, int]:
        with self._get_session() as session:
            stmt = select(DownloadRecord.podcast_name, func.count(DownloadRecord.id)).group_by(
                DownloadRecord.podcast_name
            )
            if podcast_name is not None:
                stmt = stmt.where(DownloadRecord.podcast_name == podcast_name)
            return {name: count for name, count in session.execute(stmt)}

    def close(self) -> None:
        self.engine.dispose()
        logger.debug("Database connection closed")
