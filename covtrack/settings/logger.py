from typing import Optional

from envier import En


DEFAULT_FILE_SIZE_BYTES = 15 << 20  # 15 MB


class LoggerConfig(En):
    __prefix__ = "covtrack"

    debug = En.v(
        bool,
        "debug",
        default=False,
        help_type="Boolean",
        help="Enable debug logging for the covtrack logger",
    )

    stream_handler = En.v(
        bool,
        "log_stream_handler",
        default=True,
        help_type="Boolean",
        help="Attach a stream handler writing to stderr to the covtrack logger",
    )

    log_file = En.v(
        Optional[str],
        "log_file",
        default=None,
        help_type="String",
        help="Path of a file covtrack logs are additionally routed to",
    )

    log_file_level = En.v(
        str,
        "log_file_level",
        default="DEBUG",
        help_type="String",
        help="Log level of the file handler",
    )

    log_file_size_bytes = En.v(
        int,
        "log_file_size_bytes",
        default=DEFAULT_FILE_SIZE_BYTES,
        help_type="Integer",
        help="Maximum size of the log file before it is rotated",
    )


config = LoggerConfig()
