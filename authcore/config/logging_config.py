"""Logging setup."""

import logging

from authcore.config.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once for the process."""
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)

    # SQLAlchemy echo is controlled separately via database_echo
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
