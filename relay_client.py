"""
HTTP client for the relay service, used by the terminal front-end.

The service issues its anti-forgery tokens per session cookie, so one
requests.Session is kept for the lifetime of the client.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional

import requests
import structlog
from pydantic import ValidationError

from models import ChatMessage, RelayResponse, TranscriptAck, WidgetSettings

logger = structlog.get_logger(__name__)


class RelayServiceError(Exception):
    """The relay service could not be reached or answered with garbage"""


class HttpRelayClient:
    def __init__(self, base_url: str, timeout: float = 20.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()
        self._send_token: Optional[str] = None
        self._transcript_token: Optional[str] = None

    def bootstrap(self) -> WidgetSettings:
        """Fetch widget settings and this session's tokens"""
        try:
            resp = self._http.get(f"{self.base_url}/api/chat/config", timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RelayServiceError(f"Could not load chat configuration: {e}") from e
        if not isinstance(data, dict):
            raise RelayServiceError("Unexpected response from /api/chat/config")

        self._send_token = data.pop("sendMessageToken", None)
        self._transcript_token = data.pop("transcriptToken", None)
        try:
            return WidgetSettings.model_validate(data)
        except ValidationError as e:
            raise RelayServiceError(f"Malformed chat configuration: {e}") from e

    def _post(self, path: str, payload: dict) -> dict:
        try:
            resp = self._http.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RelayServiceError(str(e)) from e
        if not isinstance(data, dict):
            raise RelayServiceError(f"Unexpected response from {path}")
        return data

    def send_message_sync(self, message: str, display_name: str, live_agent_mode: bool) -> RelayResponse:
        data = self._post("/api/chat/message", {
            "message": message,
            "displayName": display_name,
            "liveAgentMode": live_agent_mode,
            "token": self._send_token or "",
        })
        try:
            return RelayResponse.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed relay reply", body=data)
            raise RelayServiceError(f"Malformed reply from /api/chat/message: {e}") from e

    def send_transcript_sync(self, messages: List[ChatMessage], display_name: str) -> TranscriptAck:
        data = self._post("/api/chat/transcript", {
            "messages": [m.model_dump() for m in messages],
            "displayName": display_name,
            "token": self._transcript_token or "",
        })
        try:
            return TranscriptAck.model_validate(data)
        except ValidationError as e:
            logger.warning("Malformed transcript ack", body=data)
            raise RelayServiceError(f"Malformed reply from /api/chat/transcript: {e}") from e

    async def send_message(self, message: str, display_name: str, live_agent_mode: bool) -> RelayResponse:
        return await asyncio.to_thread(self.send_message_sync, message, display_name, live_agent_mode)

    async def send_transcript(self, messages: List[ChatMessage], display_name: str) -> TranscriptAck:
        return await asyncio.to_thread(self.send_transcript_sync, messages, display_name)
