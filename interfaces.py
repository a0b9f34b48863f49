"""
Capabilities the chat controller depends on. The controller only talks to
these protocols, so it runs the same behind a terminal, a test fake or any
other front-end.

- ChatView: everything the user sees (messages, prompts, input state, toggles)
- Speaker: text-to-speech engine
- Storage: durable key/value preferences (survive restarts)
- RelayClient: the server-side message relay and transcript endpoint
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from models import ChatMessage, RelayResponse, TranscriptAck
from voice import Voice


class ChatView(Protocol):
    def render(self, entries: Sequence[ChatMessage]) -> None: ...

    def prompt_name(self, text: str, prefill: str = "") -> None: ...

    def confirm(self, question: str) -> bool: ...

    def alert(self, text: str) -> None: ...

    def set_input_enabled(self, enabled: bool, label: str) -> None: ...

    def set_live_agent(self, enabled: bool, label: str, color: str) -> None: ...

    def set_minimized(self, minimized: bool) -> None: ...

    def set_speech(self, enabled: bool) -> None: ...


class Speaker(Protocol):
    def voices(self) -> List[Voice]: ...

    def speak(self, text: str, voice: Optional[Voice]) -> None: ...

    def cancel(self) -> None: ...


class Storage(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def persist(self, key: str, value: Optional[str]) -> None: ...


class RelayClient(Protocol):
    async def send_message(
        self, message: str, display_name: str, live_agent_mode: bool
    ) -> RelayResponse: ...

    async def send_transcript(
        self, messages: List[ChatMessage], display_name: str
    ) -> TranscriptAck: ...
