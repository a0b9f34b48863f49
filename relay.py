"""
Message relay: forwards one chat line to the OpenAI chat-completion API.

Each call is independent. No conversation history is sent upstream, so the
model only ever sees the latest user message.
"""
from typing import Optional

import openai
import structlog
from openai import OpenAI

from models import RelayResponse

logger = structlog.get_logger(__name__)

# Stub only: there is no queue or agent routing behind this reply.
LIVE_AGENT_REPLY = "A live agent will be with you shortly. Your position in queue: 1"


class RelayError(Exception):
    """Base class for relay failures"""


class NotConfigured(RelayError):
    """No upstream API credential is configured"""


class TransportError(RelayError):
    """The upstream API could not be reached (connection failure, timeout)"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UpstreamError(RelayError):
    """The upstream API answered with an error payload"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def build_client(cfg) -> Optional[OpenAI]:
    """Create the shared OpenAI client, or None when no key is configured"""
    if not cfg.OPENAI_API_KEY:
        return None
    return OpenAI(
        api_key=cfg.OPENAI_API_KEY,
        base_url=cfg.OPENAI_BASE_URL,
        timeout=cfg.RELAY_TIMEOUT_S,
        max_retries=0,
    )


def _upstream_message(exc: openai.APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        # the SDK sometimes unwraps {"error": {...}} and sometimes does not
        err = body.get("error", body)
        if isinstance(err, dict) and err.get("message"):
            return err["message"]
    return exc.message


def relay(message: str, display_name: str, live_agent_mode: bool, cfg, client=None) -> RelayResponse:
    """
    Relay a single user message.

    Raises NotConfigured, TransportError or UpstreamError; callers turn those
    into user-facing envelopes.
    """
    if live_agent_mode:
        logger.info("Live agent placeholder returned", user=display_name)
        return RelayResponse.success(LIVE_AGENT_REPLY)

    if not cfg.OPENAI_API_KEY or client is None:
        raise NotConfigured("OpenAI API key not configured.")

    logger.info("Relaying message", user=display_name, message_length=len(message), model=cfg.OPENAI_MODEL)
    try:
        completion = client.chat.completions.create(
            model=cfg.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": cfg.SYSTEM_INSTRUCTION},
                {"role": "user", "content": message},
            ],
            max_tokens=cfg.RELAY_MAX_TOKENS,
            temperature=cfg.RELAY_TEMPERATURE,
            timeout=cfg.RELAY_TIMEOUT_S,
        )
    except openai.APIConnectionError as e:
        raise TransportError(str(e) or type(e).__name__) from e
    except openai.APIStatusError as e:
        raise UpstreamError(_upstream_message(e), status_code=e.status_code) from e

    if not completion.choices:
        raise UpstreamError("Completion contained no choices")

    reply = completion.choices[0].message.content or ""
    logger.info("Relay reply received", user=display_name, reply_length=len(reply))
    return RelayResponse.success(reply)
