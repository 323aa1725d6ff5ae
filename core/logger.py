import logging
import sys
from datetime import datetime

import structlog

from config import config

# Flag to ensure configuration happens only once
_is_configured = False


def setup_logging(logging_config=None):
    """
    Set up logging configuration for the application using structlog.
    This function is idempotent and will only configure the logging system once.

    Args:
        logging_config: Optional logging section; defaults to ``config.logging``.
    """
    global _is_configured
    if _is_configured:
        return

    logging_config = logging_config or config.logging

    log_level = logging_config.log_level.upper()
    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s')

    handlers = []

    # Console Handler
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    # File Handler (if configured)
    if logging_config.log_file_path:
        log_path = logging_config.log_file_path
        log_path.parent.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        new_log_file = log_path.parent / f"{log_path.stem}_{timestamp}{log_path.suffix}"

        file_handler = logging.FileHandler(new_log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _is_configured = True


def get_structured_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger with the given name.

    Args:
        name: The name of the logger (usually __name__ of the module)

    Returns:
        A structured logger instance with context binding capabilities

    Example:
        >>> logger = get_structured_logger(__name__)
        >>> logger.info("connection_sent", card_id="jane-doe-120-340")
    """
    return structlog.get_logger(name)


def bind_context(logger: structlog.BoundLogger, **context) -> structlog.BoundLogger:
    """
    Bind context data to a logger for all subsequent log entries.

    Args:
        logger: The structured logger to bind context to
        **context: Keyword arguments to bind as context

    Returns:
        A new logger with the bound context

    Example:
        >>> logger = get_structured_logger(__name__)
        >>> run_logger = bind_context(logger, run_id="run_1700000000")
        >>> run_logger.info("stage_started", stage="navigation")
    """
    return logger.bind(**context)
