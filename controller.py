"""
Purpose: the single orchestration point for a chat session. Owns the Session
(display name, transcript, toggles) and every user-visible transition:

    AwaitingName --submit_name--> Active --end_chat (confirmed)--> Ended
    Active --change_name--> AwaitingName --submit_name--> Active

The controller never touches a UI toolkit, the network or the disk directly;
it goes through the ChatView, Speaker, Storage and RelayClient protocols.

Transcript rule: bot messages containing a status phrase (welcome, name
changed, chat ended) are displayed but never recorded, and informational
status lines are display-only.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

import structlog

from interfaces import ChatView, RelayClient, Speaker, Storage
from models import ChatMessage, Sender, WidgetSettings
from relay_client import RelayServiceError
from storage import MINIMIZED_KEY, SPEECH_ENABLED_KEY, USER_NAME_KEY
from utils import interpolate, is_status_message, strip_tags
from voice import select_voice

logger = structlog.get_logger(__name__)

RENAME_PREFIX = "/name "
BOT_NAME = "Bot"

CONNECTION_ERROR_MESSAGE = "Error: Could not connect to the server to send message."
GENERIC_ERROR_MESSAGE = "An error occurred."
TRANSCRIPT_NETWORK_ERROR = "Error: Could not send transcript due to a network or server issue."
TRANSCRIPT_ERROR_PREFIX = "Error: Could not send transcript."

LIVE_AGENT_ON_COLOR = "#d9534f"
LIVE_AGENT_OFF_COLOR = "#5cb85c"


class ValidationError(Exception):
    """User input rejected locally; the user is asked to try again"""


class EmptyName(ValidationError):
    pass


class SessionState(str, Enum):
    AWAITING_NAME = "awaiting_name"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class Session:
    display_name: Optional[str] = None
    transcript: List[ChatMessage] = field(default_factory=list)
    speech_enabled: bool = False
    minimized: bool = False
    live_agent_mode: bool = False
    state: SessionState = SessionState.AWAITING_NAME


def _flag(value: Optional[str]) -> bool:
    return (value or "").lower() == "true"


class ChatController:
    def __init__(
        self,
        view: ChatView,
        relay: RelayClient,
        storage: Storage,
        settings: Optional[WidgetSettings] = None,
        speaker: Optional[Speaker] = None,
    ):
        self.view = view
        self.relay = relay
        self.storage = storage
        self.settings = settings or WidgetSettings()
        self.speaker = speaker
        self.session = Session()
        self.display: List[ChatMessage] = []
        self.input_enabled = False
        self._in_flight = False
        self._pending: Set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def transcript(self) -> List[ChatMessage]:
        return list(self.session.transcript)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self, narrow_viewport: bool = False) -> None:
        """Restore persisted preferences and show either the greeting or the name prompt."""
        s = self.settings
        self.session.speech_enabled = s.speech_available and _flag(self.storage.read(SPEECH_ENABLED_KEY))
        if s.minimizable:
            self.session.minimized = True if narrow_viewport else _flag(self.storage.read(MINIMIZED_KEY))
        self.view.set_minimized(self.session.minimized)
        self.view.set_speech(self.session.speech_enabled)
        self.view.set_live_agent(False, s.live_agent_off_label, LIVE_AGENT_OFF_COLOR)

        known_name = (self.storage.read(USER_NAME_KEY) or "").strip()
        if known_name:
            self.session.display_name = known_name
            self.session.state = SessionState.ACTIVE
            self._set_input(True)
            self._show_bot(interpolate(s.welcome_back_template, userName=known_name))
            logger.info("Returning user", user=known_name)
        else:
            self.session.state = SessionState.AWAITING_NAME
            self._set_input(False)
            self.view.prompt_name(s.name_prompt_text)

    def submit_name(self, raw: str) -> None:
        """Accept the name from the prompt. Raises EmptyName for blank input."""
        if self.session.state is not SessionState.AWAITING_NAME:
            logger.debug("Name submitted outside of the name prompt", state=self.session.state.value)
            return

        name = (raw or "").strip()
        if not name:
            self.view.alert(self.settings.enter_name_alert)
            raise EmptyName("Display name must not be empty")

        self.session.display_name = name
        self.storage.persist(USER_NAME_KEY, name)
        self.display.clear()
        self.session.transcript.clear()
        self.session.state = SessionState.ACTIVE
        self._set_input(True)
        self._show_bot(interpolate(self.settings.welcome_message_template, userName=name))

    def change_name(self) -> None:
        if self.session.state is not SessionState.ACTIVE:
            return
        self.session.state = SessionState.AWAITING_NAME
        self._set_input(False)
        self.view.prompt_name(self.settings.name_prompt_text, prefill=self.session.display_name or "")

    async def submit_message(self, raw: str) -> None:
        text = (raw or "").strip()
        if not text or not self.session.display_name:
            return
        if self.session.state is not SessionState.ACTIVE or self._in_flight:
            return

        command = (raw or "").lstrip()
        if command.startswith(RENAME_PREFIX):
            self._rename(command[len(RENAME_PREFIX):].strip())
            return

        self._show_user(text)
        self._in_flight = True
        self._set_input(False, self.settings.sending_button_text)
        try:
            response = await self.relay.send_message(text, self.session.display_name, self.session.live_agent_mode)
        except (RelayServiceError, OSError) as e:
            logger.error("Relay call failed", error=str(e))
            if self.session.state is not SessionState.ENDED:
                self._show_bot(CONNECTION_ERROR_MESSAGE)
        else:
            if self.session.state is SessionState.ENDED:
                logger.info("Reply dropped after chat ended")
            elif response.ok:
                self._show_bot(response.reply or "")
            else:
                self._show_bot("Error: " + (response.error_message or GENERIC_ERROR_MESSAGE))
        finally:
            self._in_flight = False
            if self.session.state is SessionState.ACTIVE:
                self._set_input(True)

    def _rename(self, new_name: str) -> None:
        if not new_name:
            self._show_bot(self.settings.name_change_prompt)
            return
        old_name = self.session.display_name or ""
        self.session.display_name = new_name
        self.storage.persist(USER_NAME_KEY, new_name)
        self._show_bot(interpolate(self.settings.name_change_success, oldName=old_name, newName=new_name))
        logger.info("Display name changed", old=old_name, new=new_name)

    async def end_chat(self) -> bool:
        """Ask for confirmation, then hand the transcript off and close the session for good."""
        if not self.settings.endable or self.session.state is not SessionState.ACTIVE:
            return False
        if not self.view.confirm(self.settings.end_chat_confirm):
            return False

        messages = list(self.session.transcript)
        if messages:
            task = asyncio.create_task(self._deliver_transcript(messages, self.session.display_name or ""))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            logger.info("No conversation to send")

        self.display.clear()
        self.session.state = SessionState.ENDED
        self._set_input(False)
        self._show_bot(self.settings.chat_ended_message)
        self.session.transcript.clear()
        return True

    async def _deliver_transcript(self, messages: List[ChatMessage], display_name: str) -> None:
        try:
            ack = await self.relay.send_transcript(messages, display_name)
        except (RelayServiceError, OSError) as e:
            logger.error("Transcript delivery failed", error=str(e))
            self._show_status(TRANSCRIPT_NETWORK_ERROR)
            return
        if ack.ok:
            logger.info("Transcript sent", message_count=len(messages))
        else:
            logger.error("Transcript rejected", message=ack.message)
            self._show_status(f"{TRANSCRIPT_ERROR_PREFIX} {ack.message}".strip())

    async def wait_pending(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending))

    # ------------------------------------------------------------------
    # toggles
    # ------------------------------------------------------------------

    def toggle_live_agent(self) -> None:
        if self.session.state is SessionState.ENDED:
            return
        s = self.settings
        enabled = not self.session.live_agent_mode
        self.session.live_agent_mode = enabled
        if enabled:
            self.view.set_live_agent(True, s.live_agent_on_label, LIVE_AGENT_ON_COLOR)
            self._show_status(s.live_agent_on_message)
        else:
            self.view.set_live_agent(False, s.live_agent_off_label, LIVE_AGENT_OFF_COLOR)
            self._show_status(s.live_agent_off_message)

    def toggle_speech(self) -> None:
        if not self.settings.speech_available:
            return
        enabled = not self.session.speech_enabled
        self.session.speech_enabled = enabled
        self.storage.persist(SPEECH_ENABLED_KEY, "true" if enabled else "false")
        self.view.set_speech(enabled)
        if not enabled and self.speaker is not None:
            self.speaker.cancel()

    def toggle_minimize(self) -> None:
        if not self.settings.minimizable:
            return
        minimized = not self.session.minimized
        self.session.minimized = minimized
        self.storage.persist(MINIMIZED_KEY, "true" if minimized else "false")
        self.view.set_minimized(minimized)

    # ------------------------------------------------------------------
    # rendering helpers
    # ------------------------------------------------------------------

    def _set_input(self, enabled: bool, label: Optional[str] = None) -> None:
        self.input_enabled = enabled
        self.view.set_input_enabled(enabled, label or self.settings.send_button_text)

    def _show_user(self, text: str) -> None:
        entry = ChatMessage(sender=Sender.USER, name=self.session.display_name or "", text=text)
        self.display.append(entry)
        self.session.transcript.append(entry)
        self.view.render(list(self.display))

    def _show_bot(self, text: str) -> None:
        entry = ChatMessage(sender=Sender.BOT, name=BOT_NAME, text=text)
        self.display.append(entry)
        if not is_status_message(text):
            self.session.transcript.append(entry)
        self.view.render(list(self.display))
        self._speak(text)

    def _show_status(self, text: str) -> None:
        self.display.append(ChatMessage(sender=Sender.BOT, name=BOT_NAME, text=text))
        self.view.render(list(self.display))
        self._speak(text)

    def _speak(self, text: str) -> None:
        if not self.session.speech_enabled or self.speaker is None:
            return
        try:
            self.speaker.speak(strip_tags(text), select_voice(self.speaker.voices()))
        except RuntimeError as e:
            logger.warning("Speech failed", error=str(e))
