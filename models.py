"""
Pydantic models for the Echo5 chatbot relay and controller
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Sender(str, Enum):
    """Who produced a transcript entry"""
    USER = "user"
    BOT = "bot"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatMessage(BaseModel):
    """Single transcript entry; entries are appended, never edited"""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    sender: Sender
    name: str
    text: str
    timestamp: str = Field(default_factory=utc_timestamp)


class RelayRequest(BaseModel):
    """Body of the relay endpoint"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    display_name: str = Field("", alias="displayName")
    live_agent_mode: bool = Field(False, alias="liveAgentMode")
    token: str = ""


class RelayResponse(BaseModel):
    """Relay envelope: {ok: true, reply} or {ok: false, errorMessage}"""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    reply: Optional[str] = None
    error_message: Optional[str] = Field(None, alias="errorMessage")

    @classmethod
    def success(cls, reply: str) -> "RelayResponse":
        return cls(ok=True, reply=reply)

    @classmethod
    def failure(cls, error_message: str) -> "RelayResponse":
        return cls(ok=False, error_message=error_message)

    def to_envelope(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class TranscriptRequest(BaseModel):
    """Body of the transcript-delivery endpoint"""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    display_name: str = Field("", alias="displayName")
    token: str = ""


class TranscriptAck(BaseModel):
    ok: bool
    message: str = ""


class WidgetSettings(BaseModel):
    """Texts, labels and feature flags handed to the chat front-end"""
    header_text: str = "AI Chatbot"
    name_prompt_text: str = "Please enter your name to start chatting"
    welcome_message_template: str = "Hello, <strong>%userName%</strong>! How can I help you?"
    welcome_back_template: str = "Welcome back, <strong>%userName%</strong>! How can I help you?"
    name_change_success: str = (
        "Your name has been changed from <strong>%oldName%</strong> to <strong>%newName%</strong>."
    )
    name_change_prompt: str = "Please provide a new name after the /name command. Example: /name John Doe"
    enter_name_alert: str = "Please enter your name."
    end_chat_confirm: str = "Are you sure you want to end the chat? A transcript will be sent."
    chat_ended_message: str = "Chat ended. Thank you!"
    send_button_text: str = "Send"
    sending_button_text: str = "Sending..."
    end_chat_button_text: str = "End Chat"
    change_name_button_text: str = "Change Name"
    live_agent_on_label: str = "Back to AI"
    live_agent_off_label: str = "Live Agent"
    live_agent_on_message: str = "You are now in the live agent queue. An agent will reply here."
    live_agent_off_message: str = "You are now chatting with the AI assistant."
    minimizable: bool = True
    endable: bool = True
    speech_available: bool = True

    @classmethod
    def from_config(cls, cfg) -> "WidgetSettings":
        return cls(
            **cfg.WIDGET_TEXT,
            minimizable=cfg.FEATURE_MINIMIZABLE,
            endable=cfg.FEATURE_ENDABLE,
            speech_available=cfg.FEATURE_SPEECH,
        )
