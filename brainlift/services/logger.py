"""Centralized logging service using loguru."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from brainlift.config import settings

LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(exist_ok=True)

# Remove default handler
logger.remove()

logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

logger.add(
    LOG_DIR / "brainlift_{time:YYYY-MM-DD}.log",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    level="DEBUG",
    rotation="00:00",
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
    "openai._base_client",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_collaborator_call(
    collaborator: str,
    kind: str,
    job_id: str,
    attempt: int,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log a call to the search or synthesis collaborator."""
    call_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "collaborator": collaborator,
        "kind": kind,
        "job_id": job_id,
        "attempt": attempt,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    logger.info(f"COLLABORATOR_CALL: {json.dumps(call_data)}")


def log_job_transition(
    document_id: str,
    job_id: str,
    kind: str,
    state: str,
    data: Optional[dict] = None,
) -> None:
    """Log a job state transition."""
    step_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "document_id": document_id,
        "job_id": job_id,
        "kind": kind,
        "state": state,
        "data": data,
    }
    logger.info(f"JOB_TRANSITION: {json.dumps(step_data)}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {json.dumps(event_data, default=str)}")
