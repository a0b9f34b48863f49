"""
Utility functions for the Echo5 chatbot
"""
import json
import logging
import re
import sys
from typing import Tuple

import structlog

# Bot messages containing any of these are display-only, never transcript entries
STATUS_PHRASES = (
    "welcome",
    "your name has been changed",
    "chat ended",
)

_TAG_RE = re.compile(r"<[^>]+>")


def interpolate(template: str, **values: str) -> str:
    """Replace every %key% placeholder in one pass; unknown placeholders are left alone."""
    if not template:
        return ""

    def _sub(match):
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return re.sub(r"%(\w+)%", _sub, template)


def is_status_message(text: str) -> bool:
    lowered = text.lower() if isinstance(text, str) else ""
    return any(phrase in lowered for phrase in STATUS_PHRASES)


def strip_tags(text: str) -> str:
    """Plain-text version of a bot message (used for speech and transcripts)"""
    text = re.sub(r"<br\s*/?>", "\n", text or "", flags=re.IGNORECASE)
    return _TAG_RE.sub("", text).strip()


def sanitize_text(text: str) -> str:
    """Drop markup and surrounding whitespace from user-supplied text"""
    return _TAG_RE.sub("", text or "").strip()


def validate_input(text: str, max_length: int = 1000) -> Tuple[bool, str]:
    """Validate a chat message before relaying it"""
    if not text or not text.strip():
        return False, "Empty input"

    cleaned = sanitize_text(text)
    if not cleaned:
        return False, "Empty input"

    if len(cleaned) > max_length:
        return False, f"Message exceeds {max_length} character limit"

    return True, cleaned


def safe_json_loads(json_str, default=None):
    """Safely parse JSON with fallback"""
    try:
        return json.loads(json_str)
    except (json.JSONDecodeError, TypeError):
        return {} if default is None else default


def safe_json_dumps(data) -> str:
    """Safely serialize to JSON"""
    try:
        return json.dumps(data)
    except (TypeError, ValueError):
        return "{}"


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog on top of stdlib logging"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), stream=sys.stderr, format="%(message)s")
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
