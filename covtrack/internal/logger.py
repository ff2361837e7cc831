"""
Logging utilities for internal use.
Usage:
    from covtrack.internal.logger import HOUR
    from covtrack.internal.logger import get_logger
    from covtrack.internal.logger import set_tag_rate_limit
    log = get_logger(__name__)

    # Otherwise default is set to 1 minute or COVTRACK_LOGGING_RATE
    set_tag_rate_limit("notify::hit_dropped", HOUR)

    # "product" marks a tagged log record. The message is the tag used for rate limiting
    # supported keys are
    # product: component name. Required
    # more_info : more information to be logged after the main tag. Default is empty string
    log.warning("notify::hit_dropped", extra={"product": "tracker", "more_info": " unknown probe id 42"})

    # example result
    WARNING tracker::notify::hit_dropped unknown probe id 42 [3 skipped]

    Legacy support:
    if extra is not used or product is absent, the log will be rate limited using the
    filename and line number of the log call
"""

import collections
import logging
import os
import time
from typing import DefaultDict
from typing import Tuple
from typing import Union


SECOND = 1
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR


def get_logger(name: str) -> logging.Logger:
    """
    Retrieve or create a ``Logger`` instance with consistent behavior for internal use.

    Configure all loggers with a rate limiter filter to prevent excessive logging.

    """
    logger = logging.getLogger(name)
    # addFilter will only add the filter if it is not already present
    logger.addFilter(log_filter)
    logger.propagate = True
    return logger


_RATE_LIMITS = {}


def set_tag_rate_limit(tag: str, rate: int) -> None:
    """
    Set the rate limit for a specific tag.

    """
    _RATE_LIMITS[tag] = rate


# Class used for keeping track of a log lines current time bucket and the number of log lines skipped
class LoggingBucket:
    def __init__(self, bucket: float, skipped: int):
        self.bucket = bucket
        self.skipped = skipped

    def __repr__(self):
        return f"LoggingBucket({self.bucket}, {self.skipped})"

    def is_sampled(self, record: logging.LogRecord, rate: float) -> bool:
        """
        Determine if the log line should be sampled based on the rate limit.
        """
        current = time.monotonic()
        if current - self.bucket >= rate:
            self.bucket = current
            record.skipped = self.skipped
            self.skipped = 0
            return True
        self.skipped += 1
        return False


_MINF = float("-inf")

key_type = Union[Tuple[str, int], str]
_buckets: DefaultDict[key_type, LoggingBucket] = collections.defaultdict(lambda: LoggingBucket(_MINF, 0))

# Allow 1 log record per pathname/lineno every 60 seconds by default
# DEV: `COVTRACK_LOGGING_RATE=0` means to disable all rate limiting
_rate_limit = int(os.getenv("COVTRACK_LOGGING_RATE", default=60))


def log_filter(record: logging.LogRecord) -> bool:
    """
    Function used to determine if a log record should be outputted or not (True = output, False = skip).

    Rate limit log records based on the tag for product logs, or the filename and line number otherwise.
    """
    logger = logging.getLogger(record.name)
    # If the logger is set to debug, then do not apply any limits to any log
    if not _rate_limit or logger.getEffectiveLevel() == logging.DEBUG:
        return True
    if hasattr(record, "product"):
        key: key_type = record.msg
        rate = _RATE_LIMITS.get(record.msg, _rate_limit)
    else:
        key = (record.pathname, record.lineno)
        rate = _rate_limit
    return _buckets[key].is_sampled(record, rate)


class CovtrackFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        skipped = getattr(record, "skipped", 0)
        skip_str = f" [{skipped} skipped]" if skipped else ""
        product = getattr(record, "product", None)
        if product:
            more_info = getattr(record, "more_info", "")
            msg = record.msg % record.args if record.args else record.msg
            return f"{record.levelname} {product}::{msg}{more_info}{skip_str}"
        return f"{record.levelname} {super().format(record)}{skip_str}"
