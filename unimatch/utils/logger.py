"""
Structured Logger Module

Configures structlog for JSON-formatted structured logging with correlation IDs.
Conversation turns, matching runs and search calls all log through this module
so a single request can be traced from the first question to the final matches.

Example Usage:
    from unimatch.utils.logger import get_logger

    logger = get_logger(
        correlation_id="a1b2c3d4-e5f6-7890-abcd-ef1234567890",
        phase="matching",
        component="university_matching_agent",
    )

    logger.info("Cache miss, generating matches", cache_key="MASTERS|IT|...")
    logger.warning("Verification failed, keeping original", university="UBC")
    logger.error("Completion call failed", error="Timeout after 30s")

Log Levels:
    - DEBUG: Prompts, raw model responses, parsed search results
    - INFO: Conversation turns, cache hits/misses, matching completion
    - WARNING: Malformed model output, search fallbacks, skipped verifications
    - ERROR: Completion failures, exhausted retries
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

import structlog
from structlog.types import BindableLogger, EventDict, WrappedLogger

SENSITIVE_FIELDS = ("password", "api_key", "token", "secret", "credential", "auth")


def _is_sensitive_key(key: str) -> bool:
    """Match a key against SENSITIVE_FIELDS on underscore/hyphen word boundaries."""
    key_lower = key.lower()
    for sensitive in SENSITIVE_FIELDS:
        if key_lower == sensitive:
            return True
        for sep in ("_", "-"):
            if key_lower.endswith(f"{sep}{sensitive}") or key_lower.startswith(
                f"{sensitive}{sep}"
            ):
                return True
    return False


def mask_credentials(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Processor that masks credential values before rendering.

    Search and completion backends bind API keys to their loggers in a few
    places (e.g. "brave_api_key"); those values are replaced with "***MASKED***".

    Args:
        logger: Logger instance
        method_name: Logging method name
        event_dict: Event dictionary to process

    Returns:
        Event dictionary with sensitive values masked
    """
    for key in list(event_dict.keys()):
        if _is_sensitive_key(key):
            event_dict[key] = "***MASKED***"

    return event_dict


def configure_logging(
    log_file: str = "logs/unimatch.log", log_level: str = "INFO"
) -> None:
    """
    Configure structlog with JSON output to stdout and a log file.

    Args:
        log_file: Path to log file (default: "logs/unimatch.log")
        log_level: Logging level (default: "INFO")

    Log Format (JSON):
        {
            "timestamp": "2025-03-02T10:30:45Z",
            "level": "info",
            "correlation_id": "a1b2c3d4-...",
            "phase": "conversation",
            "component": "conversation_agent",
            "event": "Turn processed",
            "next_step": "DEGREE_LEVEL"
        }
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
        handlers=[logging.FileHandler(log_file), logging.StreamHandler(sys.stdout)],
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            mask_credentials,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(
    correlation_id: Optional[str] = None,
    phase: Optional[str] = None,
    component: Optional[str] = None,
) -> BindableLogger:
    """
    Get structured logger with bound context.

    Args:
        correlation_id: Request correlation ID (a UUID is generated if omitted)
        phase: Pipeline phase ("conversation", "matching", "web_search")
        component: Component name ("conversation_agent", "match_cache", ...)

    Returns:
        BoundLogger with correlation_id, phase, and component bound
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    logger = structlog.get_logger().bind(correlation_id=correlation_id)
    if phase:
        logger = logger.bind(phase=phase)
    if component:
        logger = logger.bind(component=component)

    return logger


# Initialize logging on module import with default settings
configure_logging()
