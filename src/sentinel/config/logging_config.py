"""
Sentinel Logging Configuration

Structured logging with:
- Clinical free-text redaction (transcripts, narratives, prompts)
- Check-in id bound to every entry of a check-in
- JSON output for production, console output for development

SECURITY: Raw clinical text must never reach a log sink.
"""

import logging
import sys
from typing import Any, Callable

import structlog

from sentinel.config.settings import Settings


# Keys whose values carry patient free text
SENSITIVE_PATTERNS: frozenset[str] = frozenset({
    "transcript",
    "narrative",
    "prompt",
    "raw_output",
    "raw_text",
    "document",
    "summary",
    "patient_name",
})


def _redact_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Redact clinical free text from log entries.

    Values are replaced with their length so truncation problems
    stay diagnosable without leaking content.

    Args:
        logger: Logger instance (unused but required by structlog)
        method_name: Log method name (unused but required by structlog)
        event_dict: Log event dictionary

    Returns:
        Sanitized event dictionary
    """
    def redact_value(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: redact_value(k, v) for k, v in value.items()}
        if isinstance(value, list):
            return [redact_value(key, item) for item in value]

        # Counts and flags (narrative_chars, has_narrative) stay visible
        if isinstance(value, str) and any(p in key.lower() for p in SENSITIVE_PATTERNS):
            return f"[REDACTED len={len(value)}]"

        return value

    return {
        key: value if key == "event" else redact_value(key, value)
        for key, value in event_dict.items()
    }


def _engine_context(settings: Settings) -> Callable[..., dict[str, Any]]:
    """Processor stamping every entry with the engine name and environment."""
    def add_context(logger: logging.Logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("engine", "sentinel")
        event_dict.setdefault("env", settings.env)
        return event_dict

    return add_context


def build_processors(settings: Settings) -> list[Any]:
    """
    Processor chain for the configured environment.

    Redaction always runs before the renderer: the console renderer in
    development, JSON lines everywhere else.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _redact_sensitive_data,
        _engine_context(settings),
    ]

    if settings.env == "development":
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    return processors


def configure_logging(settings: Settings) -> None:
    """Configure structlog and the stdlib root logger. Call once at engine startup."""
    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level.upper()),
    )

    # Model loading is chatty
    for noisy in ("transformers", "torch", "accelerate"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger; use keyword context, never free text."""
    return structlog.get_logger(name)


def bind_check_in(check_in_id: str) -> None:
    """Tag every log entry in the current context with the check-in id."""
    structlog.contextvars.bind_contextvars(check_in_id=check_in_id)


def clear_check_in() -> None:
    structlog.contextvars.clear_contextvars()
