"""
Structured Logging Configuration

Supports both human-readable and JSON formats for log analysis.
Registered secrets are masked in every record before it is emitted.
"""

import copy
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Literal, Iterable, List


MASK = "***"


class SecretMaskFilter(logging.Filter):
    """Replace registered secret values with *** in log messages"""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets: List[str] = []
        for secret in secrets:
            self.add_secret(secret)

    def add_secret(self, secret: Optional[str]):
        if secret and secret not in self._secrets:
            self._secrets.append(secret)

    def mask(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, MASK)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secrets:
            record.msg = self.mask(record.getMessage())
            record.args = None
        return True


# Один фильтр на процесс - секреты добавляются по мере загрузки конфигурации
_secret_filter = SecretMaskFilter()


def register_secret(secret: Optional[str]):
    """Mask this value in all log output from now on"""
    _secret_filter.add_secret(secret)


def mask_secrets(text: str) -> str:
    """Mask registered secrets in an arbitrary string"""
    return _secret_filter.mask(text)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    EXTRA_FIELDS = ("step", "command", "returncode", "duration_ms", "run_id")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for terminal output"""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Record is shared with the file handler
        record = copy.copy(record)
        color = self.COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    log_dir: Optional[str] = None,
    json_format: bool = False,
    log_file: Optional[str] = None,
    quiet: bool = True
) -> logging.Logger:
    """Setup logging configuration

    Args:
        level: Console log level
        log_dir: Directory for log files
        json_format: Use JSON format for file logs
        log_file: Specific log file name (auto-generated if None)
        quiet: Suppress noisy library logs

    Returns:
        Root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_dir else getattr(logging, level))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level))
    console_handler.addFilter(_secret_filter)
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    if sys.stderr.isatty():
        console_formatter = ColoredFormatter(fmt, datefmt="%H:%M:%S")
    else:
        console_formatter = logging.Formatter(fmt, datefmt="%H:%M:%S")
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if quiet:
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        if log_file is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"docdeploy_{timestamp}.log"

        file_handler = logging.FileHandler(
            log_path / log_file,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(_secret_filter)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(fmt))

        root_logger.addHandler(file_handler)

    return root_logger


class LogContext:
    """Context manager for adding extra fields to log records"""

    def __init__(self, logger: logging.Logger, **kwargs):
        self.logger = logger
        self.extra = kwargs
        self._old_factory = None

    def __enter__(self):
        self._old_factory = logging.getLogRecordFactory()
        extra = self.extra

        def record_factory(*args, **kwargs):
            record = self._old_factory(*args, **kwargs)
            for key, value in extra.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self._old_factory)
        return False
