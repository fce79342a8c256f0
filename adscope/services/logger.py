"""Centralized logging service using loguru."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from adscope.config import settings

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_to_file:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "adscope_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# Reduce noise from framework/network libraries
for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "hpack",
    "openai._base_client",
    "anthropic._base_client",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_adapter_call(
    adapter: str,
    query: str,
    status: str,
    records: int = 0,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one backend adapter invocation."""
    call_data = {
        "timestamp": _now(),
        "adapter": adapter,
        "query": query,
        "status": status,
        "records": records,
        "duration_ms": duration_ms,
        "error": error,
    }
    if status == "error":
        logger.warning(f"ADAPTER_CALL: {json.dumps(call_data)}")
    else:
        logger.info(f"ADAPTER_CALL: {json.dumps(call_data)}")


def log_provider_call(
    provider: str,
    status: str,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one synthesis provider invocation."""
    call_data = {
        "timestamp": _now(),
        "provider": provider,
        "status": status,
        "duration_ms": duration_ms,
        "error": error,
    }
    logger.info(f"PROVIDER_CALL: {json.dumps(call_data)}")


def log_job_step(
    record_id: str,
    step_type: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """Log a job or workflow lifecycle step."""
    step_data = {
        "timestamp": _now(),
        "record_id": record_id,
        "step_type": step_type,
        "status": status,
        "data": data,
    }
    logger.info(f"JOB_STEP: {json.dumps(step_data, default=str)}")


def log_event(
    event_type: str,
    message: str,
    **kwargs: Any,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": _now(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {json.dumps(event_data, default=str)}")
