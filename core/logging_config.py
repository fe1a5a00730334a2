"""
Centralized logging configuration for the workflow execution engine.

Features:
- Colored logging with different colors for different log levels
- Structured execution events (node fired, worker called, callback received,
  edge walk, parallel fan-out) carrying run and node context
- API call dividers for better readability
- Configurable log levels and output formats (simple, detailed, json)
"""

import json
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union


class Colors:
    """ANSI color codes for terminal output"""
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    GRAY = "\033[90m"


_TIMESTAMP_PATTERN = re.compile(r'(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})')


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name, timestamp and logger name"""

    COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    def format(self, record):
        formatted = super().format(record)

        level_color = self.COLORS.get(record.levelno, Colors.WHITE)
        formatted = formatted.replace(
            record.levelname,
            f"{level_color}{record.levelname}{Colors.RESET}",
            1
        )
        formatted = _TIMESTAMP_PATTERN.sub(f"{Colors.CYAN}\\1{Colors.RESET}", formatted, count=1)

        if record.name:
            formatted = formatted.replace(
                f"{record.name} - ",
                f"{Colors.BLUE}{record.name}{Colors.RESET} - ",
                1
            )
        return formatted


class JsonFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry.update(context)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _format_context(context: Dict[str, Any]) -> str:
    parts = []
    for key, value in context.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
            if len(value) > 500:
                value = value[:500] + "..."
        parts.append(f"{key}={value}")
    return " ".join(parts)


class ExecutionLogger:
    """Structured logger for workflow execution events"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.divider_length = 80

    def event(self, level: int, message: str, **context: Any):
        """Log a message with key=value context; json output keeps the context as fields"""
        rendered = _format_context(context)
        text = f"{message} | {rendered}" if rendered else message
        self.logger.log(level, text, extra={"context": context})

    def log_node_execution(self, run_id: str, node_id: str, node_type: str, input: Any = None):
        self.event(logging.INFO, "Node execution started",
                   run_id=run_id, node_id=node_id, node_type=node_type, input=input)

    def log_worker_call(self, run_id: str, node_id: str, worker_type: str, endpoint: str,
                        payload: Optional[Dict[str, Any]] = None):
        self.event(logging.INFO, "Worker called",
                   run_id=run_id, node_id=node_id, worker_type=worker_type,
                   endpoint=endpoint, payload=payload)

    def log_callback_received(self, run_id: str, node_id: str, status: str,
                              output: Any = None, error: Optional[str] = None):
        self.event(logging.INFO, "Callback received",
                   run_id=run_id, node_id=node_id, status=status, output=output, error=error)

    def log_edge_walking(self, run_id: str, completed_node_id: str, target_node_ids: Iterable[str]):
        self.event(logging.INFO, "Edge walking",
                   run_id=run_id, completed_node_id=completed_node_id,
                   target_node_ids=list(target_node_ids))

    def log_parallel_instances(self, run_id: str, node_id: str, instance_ids: Iterable[str]):
        instance_ids = list(instance_ids)
        self.event(logging.INFO, "Parallel instances created",
                   run_id=run_id, node_id=node_id, count=len(instance_ids),
                   instance_ids=instance_ids)

    def log_execution_error(self, message: str, error: Optional[BaseException] = None, **context: Any):
        if error is not None:
            context["error"] = str(error)
            context["error_type"] = type(error).__name__
        self.event(logging.ERROR, message, **context)

    def log_webhook_processed(self, endpoint_slug: str, event_id: Optional[str], success: bool, **context: Any):
        level = logging.INFO if success else logging.WARNING
        self.event(level, "Webhook processed",
                   endpoint_slug=endpoint_slug, webhook_event_id=event_id, success=success, **context)

    def log_api_call_start(self, endpoint: str, method: str = "POST", request_id: Optional[str] = None):
        """Log the start of an API call with clear dividers"""
        divider = "=" * self.divider_length
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        self.logger.info(f"{Colors.MAGENTA}{divider}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}🚀 API CALL START - {method} {endpoint}{Colors.RESET}")
        if request_id:
            self.logger.info(f"{Colors.MAGENTA}📋 Request ID: {request_id}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}⏰ Timestamp: {timestamp}{Colors.RESET}")

    def log_api_call_end(self, endpoint: str, method: str = "POST", request_id: Optional[str] = None,
                         duration_ms: Optional[float] = None, status: str = "completed"):
        """Log the end of an API call with clear dividers"""
        divider = "=" * self.divider_length

        self.logger.info(f"{Colors.MAGENTA}✅ API CALL END - {method} {endpoint}{Colors.RESET}")
        if request_id:
            self.logger.info(f"{Colors.MAGENTA}📋 Request ID: {request_id}{Colors.RESET}")
        if duration_ms is not None:
            self.logger.info(f"{Colors.MAGENTA}⏱️  Duration: {duration_ms:.2f}ms{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}📊 Status: {status}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}{divider}{Colors.RESET}")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "detailed",
    log_file: Optional[Union[str, Path]] = None,
    enable_colors: bool = True
) -> logging.Logger:
    """
    Set up centralized logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format style ('simple', 'detailed', 'json')
        log_file: Optional file path for logging
        enable_colors: Whether to enable colored output (terminal only)

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    use_colors = enable_colors and sys.stdout.isatty()
    if log_format == "simple":
        fmt = "%(levelname)s - %(message)s"
        formatter = ColoredFormatter(fmt) if use_colors else logging.Formatter(fmt)
    elif log_format == "json":
        formatter = JsonFormatter()
    else:  # detailed (default)
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        if use_colors:
            formatter = ColoredFormatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
        else:
            formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        # File handler never uses colors
        file_handler.setFormatter(
            JsonFormatter() if log_format == "json" else logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name"""
    return logging.getLogger(name)


def get_execution_logger(name: str) -> ExecutionLogger:
    """Get an execution event logger for the specified logger name"""
    return ExecutionLogger(logging.getLogger(name))


def configure_logging_from_settings():
    """Configure logging based on application settings"""
    from core.config import settings

    log_level = settings.log_level
    if settings.debug:
        log_level = "DEBUG"

    setup_logging(
        log_level=log_level,
        log_format=settings.log_format,
        enable_colors=True
    )

    logger = get_logger(__name__)
    logger.info(f"🎨 Logging configured with level: {log_level}, format: {settings.log_format}")


# Initialize logging when module is imported
configure_logging_from_settings()
