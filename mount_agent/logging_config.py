import logging
import logging.handlers
import re

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings

# user:password in helper options (-ouser=bob:pw) and URLs (ftp://bob:pw@host)
_CREDENTIAL_PATTERNS = (
    re.compile(r"(-ouser=[^:\s,]+):[^\s,]+"),
    re.compile(r"(://[^:/@\s]+):[^@/\s]+(?=@)"),
)


class CredentialRedactingFilter(logging.Filter):
    """Masks passwords in log messages, including captured helper output."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern in _CREDENTIAL_PATTERNS:
            redacted = pattern.sub(r"\1:********", redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _build_console_handler(settings: Settings) -> logging.Handler:
    # Helper output is logged verbatim, so Rich markup stays off
    handler = RichHandler(
        console=Console(width=120),
        show_time=True,
        show_level=True,
        show_path=True,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    handler.setLevel(settings.log_level)
    return handler


def _build_file_handler(settings: Settings) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=settings.log_file_path,
        when="midnight",
        interval=1,
        backupCount=settings.log_retention_days,
        encoding="utf-8",
    )
    handler.setLevel(settings.log_level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(levelname)s - "
            "%(filename)s:%(lineno)d in %(funcName)s() - "
            "%(message)s"
        )
    )
    return handler


def setup_logging(settings: Settings) -> None:
    """Console via Rich plus a daily rotated log file, both with passwords masked."""
    settings.log_directory.mkdir(parents=True, exist_ok=True)

    redactor = CredentialRedactingFilter()
    handlers = [_build_console_handler(settings), _build_file_handler(settings)]

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()
    for handler in handlers:
        handler.addFilter(redactor)
        root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(
        f"Logging initialized - File: {settings.log_file_path}, "
        f"Level: {settings.log_level}, Retention: {settings.log_retention_days} days"
    )
