"""Console and JSON-lines logging for lmsync runs."""

import logging
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional


# Structured fields copied from log records into JSON output
STRUCTURED_FIELDS = ('resource_id', 'resource_kind', 'operation', 'attempt', 'remote_code')


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for the log file."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in STRUCTURED_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class RedactingFilter(logging.Filter):
    """Masks credential values wherever they appear in a log message."""

    MASK = "***"

    def __init__(self, secrets: Iterable[Optional[str]]):
        super().__init__()
        self.secrets = [secret for secret in secrets if secret]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        for secret in self.secrets:
            message = message.replace(secret, self.MASK)
        record.msg = message
        record.args = None
        return True


class ConsoleFormatter(logging.Formatter):
    """Short colored lines for the terminal, prefixed with the resource in play."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        level = f"{record.levelname:8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        message = record.getMessage()

        if hasattr(record, 'resource_id'):
            kind = getattr(record, 'resource_kind', None)
            prefix = f"{kind}:{record.resource_id}" if kind else record.resource_id
            message = f"[{prefix}] {message}"

        return f"{timestamp} {level} {message}"


def setup_logging(
    log_level: str = 'info',
    log_dir: Optional[Path] = None,
    secrets: Iterable[Optional[str]] = ()
) -> None:
    """Route records to the console and to a daily JSON-lines file.

    Args:
        log_level: Logging level (debug, info, warning, error)
        log_dir: Directory for JSON log files (defaults to .lmsync/logs)
        secrets: Credential values masked in every handler's output
    """
    level = getattr(logging, log_level.upper())

    log_dir = Path(log_dir) if log_dir else Path('.lmsync/logs')
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    redactor = RedactingFilter(secrets)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
    console_handler.addFilter(redactor)
    root_logger.addHandler(console_handler)

    # File handler always captures debug output
    log_file = log_dir / f"lmsync-{datetime.now(timezone.utc).strftime('%Y%m%d')}.jsonl"
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    file_handler.addFilter(redactor)
    root_logger.addHandler(file_handler)

    # Reduce noise from the HTTP stack
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Attach structured fields to every record created inside the block.

    Fields set to None are left off. Contexts nest; the innermost value wins.
    """

    def __init__(self, logger: logging.Logger, **kwargs: Any):
        self.logger = logger
        self.context = {key: value for key, value in kwargs.items() if value is not None}
        self.old_factory = None

    def __enter__(self):
        old_factory = logging.getLogRecordFactory()

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in self.context.items():
                setattr(record, key, value)
            return record

        self.old_factory = old_factory
        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.old_factory:
            logging.setLogRecordFactory(self.old_factory)
