import inspect
import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, List, Optional

# One correlation id per analysis attempt, one conversation id per interview
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
conversation_id_var: ContextVar[Optional[str]] = ContextVar('conversation_id', default=None)

MASK = "***MASKED***"

# Provider key (xi-api-key header), Groq keys (gsk_...) and generic key/bearer assignments
SECRET_PATTERNS = [
    (re.compile(r'(xi-api-key["\']?\s*[=:]\s*)["\']?[\w-]{16,}["\']?', re.IGNORECASE), r'\1' + MASK),
    (re.compile(r'\bgsk_[\w-]{16,}'), MASK),
    (re.compile(r'(api[_-]?key\s*[=:]\s*)["\']?[\w-]{20,}["\']?', re.IGNORECASE), r'\1' + MASK),
    (re.compile(r'(bearer\s+)[\w.-]{20,}', re.IGNORECASE), r'\1' + MASK),
]

LOG_FORMAT = "%(asctime)s - [%(correlation_id)s|%(conversation_id)s] - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BASE_DIR = Path(__file__).resolve().parent.parent.parent
LOGS_DIR = BASE_DIR / "logs"
LOG_FILE_NAME = "interview_analysis.log"


def mask_secrets(text: str) -> str:
    """Mask API keys and bearer tokens in text."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretMaskingFilter(logging.Filter):
    """
    Render the message once and mask it.

    Formatting happens here rather than in the formatter so that secrets
    carried in non-string args (dicts of headers, exceptions) are masked too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = mask_secrets(message)
        record.args = ()
        return True


class RequestContextFilter(logging.Filter):
    """Stamp each record with the current correlation and conversation ids."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "N/A"
        record.conversation_id = conversation_id_var.get() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', 'N/A'),
            "conversation_id": getattr(record, 'conversation_id', '-'),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        extra = getattr(record, 'extra_data', None)
        if isinstance(extra, dict):
            log_data.update(extra)
        return json.dumps(log_data, default=str)


class ColorFormatter(logging.Formatter):
    """Console formatter that colors the whole line by level."""

    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[38;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def __init__(self):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        return f"{color}{super().format(record)}{self.RESET}"


def setup_log_file(clear_log: bool = False) -> Path:
    """Create the logs directory and optionally truncate the current log file."""
    LOGS_DIR.mkdir(exist_ok=True)
    log_file = LOGS_DIR / LOG_FILE_NAME
    if clear_log and log_file.exists():
        log_file.write_text("")
    return log_file


def _build_handlers(log_file: Path, use_json: bool) -> List[logging.Handler]:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColorFormatter())

    # 5MB per file, 5 backups
    file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
    if use_json:
        file_handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT))
    else:
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    return [console_handler, file_handler]


def setup_logger(name: str = "app", log_level: int = logging.INFO, clear_log: bool = False, use_json: bool = False, mask_secrets: bool = True) -> logging.Logger:
    """
    Sets up the service logger with a colored console handler and a rotating file handler.

    Args:
        name: Logger name (the package root, so every module logger inherits it)
        log_level: Logging level
        clear_log: If True, truncates the log file at startup
        use_json: If True, the file handler writes JSON lines
        mask_secrets: If True, provider and model API keys are masked in every record
    """
    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Idempotent: the app module may be imported more than once (reloads, tests)
    if logger.handlers:
        return logger

    log_file = setup_log_file(clear_log)
    context_filter = RequestContextFilter()
    secret_filter = SecretMaskingFilter() if mask_secrets else None

    for handler in _build_handlers(log_file, use_json):
        handler.addFilter(context_filter)
        if secret_filter:
            handler.addFilter(secret_filter)
        logger.addHandler(handler)

    return logger


def set_correlation_id(correlation_id: str):
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_conversation_id(conversation_id: Optional[str]):
    conversation_id_var.set(conversation_id)


logger = logging.getLogger(__name__)


def _log_finished(kind: str, name: str, start_time: float) -> None:
    logger.info(f"Finished {kind} {name} in {time.perf_counter() - start_time:.4f} seconds")


def _log_failed(kind: str, name: str, start_time: float, error: Exception) -> None:
    logger.error(f"Error in {kind} {name} after {time.perf_counter() - start_time:.4f} seconds: {error}")


def log_async_execution_time(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator to log the execution time of a coroutine or async generator.
    """
    name = func.__qualname__

    if inspect.isasyncgenfunction(func):
        @wraps(func)
        async def gen_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            logger.info(f"Starting async generator {name}")
            try:
                async for item in func(*args, **kwargs):
                    yield item
            except Exception as e:
                _log_failed("async generator", name, start_time, e)
                raise
            _log_finished("async generator", name, start_time)
        return gen_wrapper

    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        logger.info(f"Starting {name}")
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            _log_failed("async", name, start_time, e)
            raise
        _log_finished("async", name, start_time)
        return result
    return wrapper
