"""
Logging utilities for the storage layer.

Usernames and search keywords come straight from end users and end up in
log lines (retry warnings, decode warnings, bootstrap messages). A custom
LogRecord factory escapes CR/LF in log arguments so such values cannot
forge extra log entries (CWE-117).

Call configure_logging() once at startup.
"""

import logging

_ORIGINAL_FACTORY = logging.getLogRecordFactory()

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _escape_line_breaks(value):
    if isinstance(value, str):
        return value.replace('\r\n', '\\r\\n').replace('\r', '\\r').replace('\n', '\\n')
    return value


def _safe_record_factory(*args, **kwargs):
    """LogRecord factory that escapes line breaks in string arguments."""
    record = _ORIGINAL_FACTORY(*args, **kwargs)
    if record.args:
        if isinstance(record.args, dict):
            record.args = {k: _escape_line_breaks(v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_escape_line_breaks(a) for a in record.args)
    return record


def install_safe_logging():
    """Install the escaping LogRecord factory globally."""
    logging.setLogRecordFactory(_safe_record_factory)


def set_log_level(level: str) -> str:
    """Set the root log level. Unknown names fall back to INFO.

    Returns the level name actually applied.
    """
    level_upper = level.upper()
    if level_upper not in VALID_LEVELS:
        logging.getLogger(__name__).warning("Invalid log level '%s', using INFO", level)
        level_upper = "INFO"

    logging.getLogger().setLevel(getattr(logging, level_upper))
    return level_upper


def configure_logging(level: str = "INFO") -> str:
    """Install safe logging, a default handler and the requested level."""
    install_safe_logging()
    logging.basicConfig(format=LOG_FORMAT)
    applied = set_log_level(level)
    logging.getLogger(__name__).info("Log level set to %s", applied)
    return applied
