import logging
from logging.handlers import RotatingFileHandler
from os import path
from typing import Optional

from covtrack.internal.logger import CovtrackFormatter
from covtrack.settings.logger import config


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(filename)s:%(lineno)d] - %(message)s"


def configure_covtrack_logger() -> None:
    """Configures covtrack log levels and file paths.

    Customization is possible with the environment variables:
        ``COVTRACK_DEBUG``, ``COVTRACK_LOG_FILE_LEVEL``, and ``COVTRACK_LOG_FILE``

    By default covtrack loggers write warnings and above to stderr and no logs are written to a file.
    """
    covtrack_logger = logging.getLogger("covtrack")
    if config.stream_handler and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in covtrack_logger.handlers
    ):
        handler = logging.StreamHandler()
        handler.setFormatter(CovtrackFormatter())
        covtrack_logger.addHandler(handler)

    if config.debug:
        covtrack_logger.setLevel(logging.DEBUG)

    level_name = config.log_file_level.upper()
    try:
        file_log_level_value = getattr(logging, level_name)
    except AttributeError:
        raise ValueError(
            "COVTRACK_LOG_FILE_LEVEL is invalid. Log level must be CRITICAL/ERROR/WARNING/INFO/DEBUG.",
            level_name,
        )
    _add_file_handler(covtrack_logger, config.log_file, file_log_level_value, config.log_file_size_bytes)


def _add_file_handler(
    logger: logging.Logger,
    log_path: Optional[str],
    log_level: int,
    max_file_bytes: int,
) -> Optional[RotatingFileHandler]:
    if log_path is None:
        return None

    log_path = path.abspath(log_path)
    file_handler = RotatingFileHandler(filename=log_path, mode="a", maxBytes=max_file_bytes, backupCount=1)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)
    logger.debug("covtrack logs will be routed to %s", log_path)
    return file_handler
