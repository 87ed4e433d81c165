"""
Structured logging setup for the quiz deck app.
"""

import logging
import logging.handlers
import sys
import time
from pathlib import Path

import structlog
from pythonjsonlogger.json import JsonFormatter

from quizdeck.config import Settings, get_settings


class LoggingConfig:
    """Centralized logging configuration"""

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.log_level = settings.log_level.upper()
        self.log_format = settings.log_format
        self.log_file_enabled = settings.log_file_enabled
        self.log_file_path = settings.log_file_path
        self.log_file_max_size = settings.log_file_max_size
        self.log_file_backup_count = settings.log_file_backup_count
        self.app_name = settings.app_name
        self.environment = settings.environment

    def setup_logging(self):
        """Configure structlog and the stdlib root logger."""
        logging.getLogger().handlers.clear()

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                self._add_app_context,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
                if self.log_format == "json"
                else structlog.dev.ConsoleRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, self.log_level))

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, self.log_level))

        if self.log_format == "json":
            formatter = JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if self.log_file_enabled:
            self._setup_file_handler(root_logger, formatter)

        # Reduce noise from third-party libraries
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("quizdeck").setLevel(getattr(logging, self.log_level))

        get_logger("quizdeck.logging").info(
            "Logging configuration initialized",
            log_level=self.log_level,
            log_format=self.log_format,
            file_logging=self.log_file_enabled,
            environment=self.environment,
        )

    def _add_app_context(self, logger, method_name, event_dict):
        """Add application context to all log entries"""
        event_dict["app_name"] = self.app_name
        event_dict["environment"] = self.environment
        return event_dict

    def _setup_file_handler(self, logger, formatter):
        """Setup file logging with rotation"""
        try:
            Path(self.log_file_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                self.log_file_path,
                maxBytes=self.log_file_max_size,
                backupCount=self.log_file_backup_count,
                encoding="utf-8",
            )
        except OSError as e:
            get_logger("quizdeck.logging").error(
                "Failed to setup file logging", error=str(e), log_path=self.log_file_path
            )
            return
        file_handler.setLevel(getattr(logging, self.log_level))
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def setup_logging(settings: Settings | None = None):
    """Initialize logging configuration"""
    LoggingConfig(settings).setup_logging()


def get_logger(name: str):
    """Get a structured logger for the given name"""
    return structlog.get_logger(name)


class LoggingMiddleware:
    """ASGI middleware for request/response logging"""

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("quizdeck.middleware")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = None

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            self.logger.error(
                "Request failed",
                method=scope["method"],
                path=scope["path"],
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(time.perf_counter() - started, 4),
            )
            raise

        self.logger.info(
            "Request completed",
            method=scope["method"],
            path=scope["path"],
            status_code=status_code,
            duration_seconds=round(time.perf_counter() - started, 4),
        )
