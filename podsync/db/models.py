"""SQLAlchemy ORM models for download state."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class DownloadRecord(Base):
    """Marker for an episode that has been downloaded.

    Episodes are keyed by the configured podcast name and the feed GUID.
    """

    __tablename__ = "downloads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    podcast_name: Mapped[str] = mapped_column(String(512), nullable=False)
    guid: Mapped[str] = mapped_column(String(2048), nullable=False)

    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    downloaded_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("podcast_name", "guid", name="uq_download_podcast_guid"),
        Index("ix_downloads_podcast_name", "podcast_name"),
    )

    def __repr__(self) -> str:
        return f"<DownloadRecord(podcast={self.podcast_name!r}, guid={self.guid!r})>"
