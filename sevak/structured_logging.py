"""
Structured Logging System for Sevak
JSON log records with request context tracking for the orchestration core
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .error_handling import SevakError, request_id_var, stage_var, user_id_var


@dataclass
class RequestLogContext:
    """Structured context attached to request lifecycle records"""
    request_id: str
    user_id: str
    stage: str
    timestamp: float
    duration_ms: Optional[float] = None
    response_mode: Optional[str] = None
    language: Optional[str] = None
    error_category: Optional[str] = None
    delivery_attempts: int = 0
    additional_context: Optional[Dict[str, Any]] = None


class SevakLogger:
    """Structured logger for request lifecycle events"""

    def __init__(self, name: str = "sevak.requests"):
        self.name = name
        self.logger = logging.getLogger(name)

    def _context(self, **fields) -> RequestLogContext:
        return RequestLogContext(
            request_id=request_id_var.get(),
            user_id=user_id_var.get(),
            stage=stage_var.get(),
            timestamp=time.time(),
            **fields
        )

    def log_request_start(self, request_id: str, user_id: str, input_kind: str):
        """Log the start of a request and bind its context variables"""
        request_id_var.set(request_id)
        user_id_var.set(user_id)
        stage_var.set("received")

        log_data = asdict(self._context(additional_context={'input_kind': input_kind}))
        log_data['event'] = 'request_start'
        self.logger.info("Request started", extra={"structured_data": log_data})

    def log_request_success(self, duration_ms: float, additional_context: Optional[Dict[str, Any]] = None):
        """Log successful request completion"""
        log_data = asdict(self._context(duration_ms=duration_ms, additional_context=additional_context))
        log_data['event'] = 'request_success'
        self.logger.info("Request completed successfully", extra={"structured_data": log_data})

    def log_request_error(
        self,
        error: BaseException,
        duration_ms: float,
        additional_context: Optional[Dict[str, Any]] = None
    ):
        """Log request error with full context"""
        error_category = error.category.value if isinstance(error, SevakError) else None

        log_data = asdict(self._context(
            duration_ms=duration_ms,
            error_category=error_category,
            additional_context=additional_context
        ))
        log_data.update({
            'event': 'request_error',
            'error_message': str(error),
            'error_type': type(error).__name__,
            'traceback': logging.Formatter().formatException((type(error), error, error.__traceback__))
        })
        self.logger.error("Request failed", extra={"structured_data": log_data})

    def log_stage(self, stage: str, duration_ms: float, outcome: str = "ok"):
        """Log completion of an orchestration stage"""
        stage_var.set(stage)
        log_data = {
            'event': 'stage_complete',
            'request_id': request_id_var.get(),
            'user_id': user_id_var.get(),
            'stage': stage,
            'duration_ms': duration_ms,
            'outcome': outcome
        }
        self.logger.debug(f"Stage {stage} {outcome}", extra={"structured_data": log_data})

    def log_degradation(self, stage: str, reason: str, additional_context: Optional[Dict[str, Any]] = None):
        """Log a stage that fell back to a reduced behavior"""
        log_data = {
            'event': 'degradation',
            'request_id': request_id_var.get(),
            'user_id': user_id_var.get(),
            'stage': stage,
            'timestamp': time.time(),
            'reason': reason
        }
        if additional_context:
            log_data.update(additional_context)

        self.logger.warning(f"Degraded {stage}: {reason}", extra={"structured_data": log_data})


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Request context from the current task
        if request_id := request_id_var.get():
            log_data["request_id"] = request_id
        if user_id := user_id_var.get():
            log_data["user_id"] = user_id
        if stage := stage_var.get():
            log_data["stage"] = stage

        # Add structured data if present
        if hasattr(record, 'structured_data'):
            log_data.update(record.structured_data)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for better readability"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'      # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        timestamp = time.strftime('%H:%M:%S', time.localtime(record.created))

        context_info = ""
        if request_id := request_id_var.get():
            context_info += f" [{request_id[:8]}]"

        if hasattr(record, 'structured_data'):
            data = record.structured_data
            if data.get('duration_ms') is not None:
                context_info += f" ({data['duration_ms']:.1f}ms)"

        message = f"{color}{timestamp} {record.levelname:<7}{reset} {record.name}: {record.getMessage()}{context_info}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    json_console: bool = False,
    name: str = "sevak"
):
    """
    Configure console and optional JSONL file logging.

    The console uses the colored formatter unless json_console is set. When
    log_dir is given, every record also goes to <name>.jsonl and errors to
    <name>_errors.jsonl.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers to avoid duplicates
    root.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(StructuredFormatter() if json_console else ColoredConsoleFormatter())
    root.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        formatter = StructuredFormatter()

        file_handler = logging.FileHandler(log_path / f'{name}.jsonl', encoding='utf-8')
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

        error_handler = logging.FileHandler(log_path / f'{name}_errors.jsonl', encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)

    # Third-party HTTP clients are noisy at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


# Context manager for request tracking
@asynccontextmanager
async def request_log_context(
    request_id: str,
    user_id: str,
    input_kind: str = "text",
    logger: Optional[SevakLogger] = None,
    summary: Optional[Dict[str, Any]] = None
):
    """
    Bind request context variables for the duration of a request and log its
    start, success or failure with the elapsed time.

    Callers may fill ``summary`` while inside the block; it is attached to the
    completion record.
    """
    logger = logger or SevakLogger()
    tokens = (request_id_var.set(request_id), user_id_var.set(user_id), stage_var.set(""))
    logger.log_request_start(request_id, user_id, input_kind)
    start_time = time.time()

    try:
        yield logger
        duration_ms = (time.time() - start_time) * 1000
        logger.log_request_success(duration_ms, additional_context=summary)
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.log_request_error(e, duration_ms, additional_context=summary)
        raise
    finally:
        request_id_var.reset(tokens[0])
        user_id_var.reset(tokens[1])
        stage_var.reset(tokens[2])
