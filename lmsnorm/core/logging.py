"""Library logging with Loguru + Slack notifications."""

import logging
import sys
from typing import Any

import httpx
from loguru import logger

from lmsnorm.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {message}"

# Track if logging is already configured to prevent duplicates
_logging_configured = False


class InterceptHandler(logging.Handler):
    """Redirect stdlib logs to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _slack_sink(message: Any) -> None:
    if not settings.SLACK_WEBHOOK_URL:
        return

    record = message.record
    name = record["extra"].get("name") or record.get("name", "lmsnorm")
    job = record["extra"].get("job")
    where = f"{name} job={job}" if job else f"{name}:{record['function']}:{record['line']}"
    text = f"[{record['level'].name}] {where}\n{record['message']}"
    try:
        httpx.post(
            settings.SLACK_WEBHOOK_URL,
            json={"text": text},
            timeout=5.0,
        )
    except httpx.HTTPError:
        # Avoid recursive logging on Slack failures
        pass


def _resolve_level() -> str:
    level = (settings.effective_log_level or "INFO").strip().upper()
    level = {
        "WARN": "WARNING",
        "FATAL": "CRITICAL",
    }.get(level, level)
    if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
        level = "INFO"
    return level


def configure_logging(force: bool = False) -> None:
    """Install the lmsnorm sinks.

    Not called on import: applications embedding the normalizer keep their own
    loguru setup unless they opt in (the module entrypoint does).
    """
    global _logging_configured

    # Prevent duplicate configuration
    if _logging_configured and not force:
        return
    _logging_configured = True

    level = _resolve_level()

    logger.remove()
    # Provide a safe default for log formatting.
    logger.configure(extra={"name": "lmsnorm"})
    logger.add(
        sys.stderr,
        level=level,
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )
    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            level=level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    if settings.SLACK_WEBHOOK_URL:
        logger.add(_slack_sink, level="ERROR", enqueue=True)

    # Intercept stdlib logging (jsonschema, httpx) into the same sinks
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)
