import asyncio
from types import SimpleNamespace

import pytest

from config import TestingConfig
from controller import ChatController
from models import RelayResponse, TranscriptAck, WidgetSettings
from storage import MemoryStorage
from transcripts import InMemoryTranscriptStore
from voice import Voice
from web_app import create_app


class RelayTestConfig(TestingConfig):
    OPENAI_MODEL = "gpt-3.5-turbo"
    RELAY_MAX_TOKENS = 150
    RELAY_TEMPERATURE = 0.7
    RELAY_TIMEOUT_S = 15.0
    MAX_INPUT_LENGTH = 1000


class FakeCompletions:
    def __init__(self, reply="Hi there", exc=None, empty=False):
        self.reply = reply
        self.exc = exc
        self.empty = empty
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        if self.empty:
            return SimpleNamespace(choices=[])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])


class FakeOpenAI:
    def __init__(self, **kwargs):
        self.completions = FakeCompletions(**kwargs)
        self.chat = SimpleNamespace(completions=self.completions)


class FakeView:
    def __init__(self, confirm_answer=True):
        self.confirm_answer = confirm_answer
        self.rendered = []
        self.prompts = []
        self.alerts = []
        self.questions = []
        self.input_states = []
        self.live_agent = []
        self.minimized = None
        self.speech = None

    def render(self, entries):
        self.rendered = list(entries)

    def prompt_name(self, text, prefill=""):
        self.prompts.append((text, prefill))

    def confirm(self, question):
        self.questions.append(question)
        return self.confirm_answer

    def alert(self, text):
        self.alerts.append(text)

    def set_input_enabled(self, enabled, label):
        self.input_states.append((enabled, label))

    def set_live_agent(self, enabled, label, color):
        self.live_agent.append((enabled, label, color))

    def set_minimized(self, minimized):
        self.minimized = minimized

    def set_speech(self, enabled):
        self.speech = enabled

    @property
    def texts(self):
        return [e.text for e in self.rendered]


class FakeRelay:
    """Records calls; reply can be a RelayResponse or an exception to raise."""

    def __init__(self, view=None, reply=None, transcript_ack=None, transcript_exc=None):
        self.view = view
        self.reply = reply if reply is not None else RelayResponse.success("Hi there")
        self.transcript_ack = transcript_ack or TranscriptAck(ok=True, message="Transcript sent.")
        self.transcript_exc = transcript_exc
        self.calls = []
        self.input_during_call = []
        self.transcripts = []
        self.gate = None

    async def send_message(self, message, display_name, live_agent_mode):
        self.calls.append((message, display_name, live_agent_mode))
        if self.view is not None and self.view.input_states:
            self.input_during_call.append(self.view.input_states[-1])
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply

    async def send_transcript(self, messages, display_name):
        self.transcripts.append((list(messages), display_name))
        await asyncio.sleep(0)
        if self.transcript_exc is not None:
            raise self.transcript_exc
        return self.transcript_ack


class FakeSpeaker:
    def __init__(self, voices=None):
        self._voices = voices if voices is not None else [
            Voice(id="v1", name="Daniel", lang="en-GB"),
            Voice(id="v2", name="Samantha", lang="en-US"),
        ]
        self.spoken = []
        self.cancelled = 0

    def voices(self):
        return list(self._voices)

    def speak(self, text, voice):
        self.spoken.append((text, voice))

    def cancel(self):
        self.cancelled += 1


@pytest.fixture
def view():
    return FakeView()


@pytest.fixture
def relay(view):
    return FakeRelay(view=view)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def speaker():
    return FakeSpeaker()


@pytest.fixture
def settings():
    return WidgetSettings()


@pytest.fixture
def controller(view, relay, storage, settings, speaker):
    return ChatController(view=view, relay=relay, storage=storage, settings=settings, speaker=speaker)


@pytest.fixture
def fake_openai():
    return FakeOpenAI(reply="Hi Ann")


@pytest.fixture
def transcript_store():
    return InMemoryTranscriptStore()


@pytest.fixture
def app(fake_openai, transcript_store):
    return create_app(RelayTestConfig, openai_client=fake_openai, transcript_store=transcript_store)


@pytest.fixture
def client(app):
    return app.test_client()
