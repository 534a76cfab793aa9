import logging
import sys
from typing import Any

from loguru import logger

from jobdesk.config import get_settings


class InterceptHandler(logging.Handler):
    """Intercept stdlib logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _health_log_filter(record: dict[str, Any]) -> bool:
    """Filter health check logs - only show at DEBUG level."""
    message = record.get("message", "")
    if "/health" in message:
        return bool(record["level"].no <= 10)  # DEBUG level
    return True


def _format_extra(record: dict[str, Any]) -> str:
    """Render bound context (job, trigger, ...) after the event name."""
    extra = {k: v for k, v in record["extra"].items() if k != "name"}
    record["extra"]["context"] = " ".join(f"{k}={v}" for k, v in extra.items())
    return (
        "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | "
        "{message} {extra[context]}\n{exception}"
    )


def setup_logging() -> None:
    """Configure loguru for the application."""
    settings = get_settings()

    # Remove default handler
    logger.remove()

    # Console output with colors in debug, plain text otherwise
    if settings.debug:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level> {extra}"
            ),
            backtrace=True,
            diagnose=True,
        )
    else:
        # Logs go to stderr (docker logs)
        logger.add(
            sys.stderr,
            level="INFO",
            format=_format_extra,
            filter=_health_log_filter,
            backtrace=True,
            diagnose=False,
        )

    # Intercept stdlib logging (uvicorn, sqlalchemy, apscheduler)
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in [
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "sqlalchemy.engine",
        "apscheduler",
    ]:
        logging.getLogger(name).handlers = [InterceptHandler()]


def get_logger(name: str) -> Any:
    """Get a logger bound to a name."""
    return logger.bind(name=name)
