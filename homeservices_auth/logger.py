import logging
from logging.handlers import RotatingFileHandler
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

# Sentry is a process-wide singleton
_sentry_initialized = False


def init_sentry(
    dsn: str,
    environment: str = "development",
    traces_sample_rate: float = 1.0,
) -> bool:
    """
    Initialize the Sentry SDK once for the whole process.

    Args:
        dsn (str): Sentry DSN for error tracking. An empty DSN disables Sentry.
        environment (str): Sentry environment name (development/production).
        traces_sample_rate (float): Performance monitoring sample rate (0.0 to 1.0).

    Returns:
        bool: True if Sentry was initialized by this call, False otherwise.
    """
    global _sentry_initialized

    if _sentry_initialized or not dsn:
        return False

    sentry_logging = LoggingIntegration(
        level=logging.INFO,  # breadcrumbs
        event_level=logging.ERROR,  # events
    )

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[sentry_logging, AsyncioIntegration()],
    )

    _sentry_initialized = True
    return True


def setup_logger(
    name: str,
    log_file: str,
    level: int = logging.INFO,
    sentry_tag: Optional[str] = None,
) -> logging.Logger:
    """
    Return the named logger, attaching a rotating file sink and stderr.

    When Sentry is active the component is tagged with ``sentry_tag`` so that
    events from the OTP, token and notification paths can be filtered apart.

    Args:
        name (str): Logger name, usually the component.
        log_file (str): Path of the rotating log file; parent dirs are created.
        level (int, optional): Threshold for the logger and both sinks.
        sentry_tag (str, optional): Component tag in Sentry (e.g. "otp", "token").

    Returns:
        logging.Logger: The ready logger.
    """
    if sentry_tag and _sentry_initialized:
        sentry_sdk.set_tag("component", sentry_tag)

    component_logger = logging.getLogger(name)
    component_logger.setLevel(level)

    # Calling setup twice for the same name must not duplicate output
    if component_logger.handlers:
        return component_logger

    line_format = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    sinks: list[logging.Handler] = [
        RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        ),
        logging.StreamHandler(),
    ]
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(line_format)
        component_logger.addHandler(sink)

    return component_logger
