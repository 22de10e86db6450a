"""Database factory for creating repository instances."""

import logging
from typing import Optional

from podsync.config import Config

from .repository import (
    DownloadStateRepositoryInterface,
    SQLAlchemyDownloadStateRepository,
)

logger = logging.getLogger(__name__)


def create_repository(
    database_url: Optional[str] = None, echo: bool = False
) -> DownloadStateRepositoryInterface:
    """
    Create a download state repository for the provided or configured database URL.

    If `database_url` is not provided, the `DATABASE_URL` of a fresh `Config`
    is used: `PODSYNC_DATABASE_URL`, or `state.db` in the config directory.

    Parameters:
        database_url (Optional[str]): SQLAlchemy database URL to use.
        echo (bool): If true, enable SQL statement logging.

    Returns:
        DownloadStateRepositoryInterface: A repository backed by the resolved URL.
    """
    if database_url is None:
        database_url = Config().DATABASE_URL

    # Log database type (without credentials)
    if "://" in database_url:
        db_type = database_url.split("://")[0]
        if "@" in database_url:
            db_location = database_url.split("@")[-1]
            logger.info(f"Creating {db_type} repository: ...@{db_location}")
        else:
            logger.info(f"Creating {db_type} repository: {database_url}")
    else:
        logger.info(f"Creating repository with URL: {database_url}")

    return SQLAlchemyDownloadStateRepository(database_url=database_url, echo=echo)
