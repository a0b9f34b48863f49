import asyncio

import pytest
import requests

from conftest import FakeView
from controller import CONNECTION_ERROR_MESSAGE, TRANSCRIPT_NETWORK_ERROR, ChatController, SessionState
from models import ChatMessage, Sender
from relay_client import HttpRelayClient, RelayServiceError
from storage import MemoryStorage

BASE = "http://relay.test"


def _bootstrapped(requests_mock):
    requests_mock.get(f"{BASE}/api/chat/config", json={
        "header_text": "Support",
        "endable": False,
        "sendMessageToken": "send-123",
        "transcriptToken": "tr-456",
    })
    client = HttpRelayClient(BASE + "/")
    client.bootstrap()
    return client


def test_bootstrap_reads_settings(requests_mock):
    requests_mock.get(f"{BASE}/api/chat/config", json={"header_text": "Support", "sendMessageToken": "a"})
    settings = HttpRelayClient(BASE).bootstrap()
    assert settings.header_text == "Support"
    assert settings.send_button_text == "Send"


def test_bootstrap_failure(requests_mock):
    requests_mock.get(f"{BASE}/api/chat/config", status_code=500)
    with pytest.raises(RelayServiceError):
        HttpRelayClient(BASE).bootstrap()


def test_send_message_posts_envelope_with_token(requests_mock):
    client = _bootstrapped(requests_mock)
    m = requests_mock.post(f"{BASE}/api/chat/message", json={"ok": True, "reply": "Hi Ann"})

    resp = asyncio.run(client.send_message("Hello", "Ann", True))

    assert resp.ok and resp.reply == "Hi Ann"
    assert m.last_request.json() == {
        "message": "Hello", "displayName": "Ann", "liveAgentMode": True, "token": "send-123",
    }


def test_error_envelope_is_returned_not_raised(requests_mock):
    client = _bootstrapped(requests_mock)
    requests_mock.post(f"{BASE}/api/chat/message", status_code=403,
                       json={"ok": False, "errorMessage": "Unauthorized"})
    resp = client.send_message_sync("Hello", "Ann", False)
    assert resp.ok is False
    assert resp.error_message == "Unauthorized"


def test_network_failure_raises(requests_mock):
    client = _bootstrapped(requests_mock)
    requests_mock.post(f"{BASE}/api/chat/message", exc=requests.exceptions.ConnectTimeout)
    with pytest.raises(RelayServiceError):
        asyncio.run(client.send_message("Hello", "Ann", False))


def test_send_transcript(requests_mock):
    client = _bootstrapped(requests_mock)
    m = requests_mock.post(f"{BASE}/api/chat/transcript", json={"ok": True, "message": "Transcript sent."})
    messages = [ChatMessage(sender=Sender.USER, name="Ann", text="Hello", timestamp="2026-01-01T10:00:00+00:00")]

    ack = asyncio.run(client.send_transcript(messages, "Ann"))

    assert ack.ok
    body = m.last_request.json()
    assert body["token"] == "tr-456"
    assert body["messages"] == [
        {"sender": "user", "name": "Ann", "text": "Hello", "timestamp": "2026-01-01T10:00:00+00:00"}
    ]


def test_malformed_reply_raises_service_error(requests_mock):
    client = _bootstrapped(requests_mock)
    requests_mock.post(f"{BASE}/api/chat/message", status_code=502, json={"error": "bad gateway"})
    with pytest.raises(RelayServiceError):
        client.send_message_sync("Hello", "Ann", False)


def test_malformed_reply_keeps_the_chat_alive(requests_mock):
    requests_mock.get(f"{BASE}/api/chat/config", json={"sendMessageToken": "s", "transcriptToken": "t"})
    client = HttpRelayClient(BASE)
    settings = client.bootstrap()
    requests_mock.post(f"{BASE}/api/chat/message", status_code=502, json={"error": "bad gateway"})
    requests_mock.post(f"{BASE}/api/chat/transcript", status_code=502, json={"error": "bad gateway"})
    view = FakeView()
    controller = ChatController(view=view, relay=client, storage=MemoryStorage(), settings=settings)
    controller.start()
    controller.submit_name("Ann")

    asyncio.run(controller.submit_message("Hello"))

    assert view.texts[-1] == CONNECTION_ERROR_MESSAGE
    assert controller.state is SessionState.ACTIVE
    assert controller.input_enabled is True

    async def finish():
        await controller.end_chat()
        await controller.wait_pending()

    asyncio.run(finish())
    assert controller.state is SessionState.ENDED
    assert view.texts[-1] == TRANSCRIPT_NETWORK_ERROR


def test_bootstrap_rejects_non_object_body(requests_mock):
    requests_mock.get(f"{BASE}/api/chat/config", json=["not", "settings"])
    with pytest.raises(RelayServiceError):
        HttpRelayClient(BASE).bootstrap()
