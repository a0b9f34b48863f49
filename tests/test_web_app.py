import smtplib

import httpx
import openai

from conftest import FakeOpenAI, RelayTestConfig
from relay import LIVE_AGENT_REPLY
from web_app import (
    NOT_CONFIGURED_MESSAGE, TRANSPORT_ERROR_MESSAGE, UPSTREAM_ERROR_MESSAGE, create_app,
)

URL = "https://api.openai.com/v1/chat/completions"


def _tokens(client):
    data = client.get("/api/chat/config").get_json()
    return data["sendMessageToken"], data["transcriptToken"]


def _send(client, message, token, live=False, name="Ann"):
    return client.post("/api/chat/message", json={
        "message": message, "displayName": name, "liveAgentMode": live, "token": token,
    })


def test_config_exposes_settings_and_stable_tokens(client):
    first = client.get("/api/chat/config").get_json()
    second = client.get("/api/chat/config").get_json()
    assert first["header_text"] == "AI Chatbot"
    assert first["endable"] is True
    assert first["sendMessageToken"] == second["sendMessageToken"]
    assert first["sendMessageToken"] != first["transcriptToken"]


def test_message_without_token_is_unauthorized(client, fake_openai):
    _tokens(client)
    resp = _send(client, "Hello", "forged")
    assert resp.status_code == 403
    assert resp.get_json() == {"ok": False, "errorMessage": "Unauthorized"}
    assert fake_openai.completions.calls == []


def test_transcript_token_cannot_send_messages(client):
    _, transcript_token = _tokens(client)
    assert _send(client, "Hello", transcript_token).status_code == 403


def test_message_is_relayed(client, fake_openai):
    token, _ = _tokens(client)
    resp = _send(client, "Hello", token)
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "reply": "Hi Ann"}
    assert fake_openai.completions.calls[0]["messages"][1]["content"] == "Hello"


def test_markup_is_stripped_before_relaying(client, fake_openai):
    token, _ = _tokens(client)
    _send(client, "<b>Hello</b>", token)
    assert fake_openai.completions.calls[0]["messages"][1]["content"] == "Hello"


def test_form_encoded_request_is_accepted(client, fake_openai):
    token, _ = _tokens(client)
    resp = client.post("/api/chat/message", data={
        "message": "help", "displayName": "Ann", "liveAgentMode": "true", "token": token,
    })
    assert resp.get_json() == {"ok": True, "reply": LIVE_AGENT_REPLY}
    assert fake_openai.completions.calls == []


def test_live_agent_placeholder(client, fake_openai):
    token, _ = _tokens(client)
    resp = _send(client, "help", token, live=True)
    assert resp.get_json() == {"ok": True, "reply": LIVE_AGENT_REPLY}
    assert fake_openai.completions.calls == []


def test_empty_and_oversized_messages_are_rejected(client):
    token, _ = _tokens(client)
    assert _send(client, "   ", token).status_code == 400
    assert _send(client, "x" * 1001, token).status_code == 400


def test_missing_credential_gives_generic_message(transcript_store):
    class NoKey(RelayTestConfig):
        OPENAI_API_KEY = None

    client = create_app(NoKey, transcript_store=transcript_store).test_client()
    token, _ = _tokens(client)
    resp = _send(client, "Hello", token)
    body = resp.get_json()
    assert body == {"ok": False, "errorMessage": NOT_CONFIGURED_MESSAGE}
    assert "OPENAI" not in resp.get_data(as_text=True)


def test_transport_error_is_not_leaked(transcript_store):
    fake = FakeOpenAI(exc=openai.APIConnectionError(message="dns lookup failed for api.openai.com",
                                                    request=httpx.Request("POST", URL)))
    client = create_app(RelayTestConfig, openai_client=fake, transcript_store=transcript_store).test_client()
    token, _ = _tokens(client)
    resp = _send(client, "Hello", token)
    assert resp.get_json() == {"ok": False, "errorMessage": TRANSPORT_ERROR_MESSAGE}
    assert "dns" not in resp.get_data(as_text=True)


def test_upstream_error_is_not_leaked(transcript_store):
    request = httpx.Request("POST", URL)
    body = {"message": "Incorrect API key provided: sk-abc"}
    error = openai.APIStatusError("Error code: 401", response=httpx.Response(401, request=request), body=body)
    client = create_app(RelayTestConfig, openai_client=FakeOpenAI(exc=error),
                        transcript_store=transcript_store).test_client()
    token, _ = _tokens(client)
    resp = _send(client, "Hello", token)
    assert resp.get_json() == {"ok": False, "errorMessage": UPSTREAM_ERROR_MESSAGE}
    assert "sk-abc" not in resp.get_data(as_text=True)


def _transcript_payload(token):
    return {
        "displayName": "Ann",
        "token": token,
        "messages": [
            {"sender": "user", "name": "Ann", "text": "Hello", "timestamp": "2026-01-01T10:00:00+00:00"},
            {"sender": "bot", "name": "Bot", "text": "Hi Ann", "timestamp": "2026-01-01T10:00:02+00:00"},
        ],
    }


def test_transcript_is_stored(client, transcript_store):
    _, token = _tokens(client)
    resp = client.post("/api/chat/transcript", json=_transcript_payload(token))
    assert resp.get_json() == {"ok": True, "message": "Transcript sent."}
    assert len(transcript_store) == 1


def test_transcript_requires_its_own_token(client, transcript_store):
    send_token, _ = _tokens(client)
    resp = client.post("/api/chat/transcript", json=_transcript_payload(send_token))
    assert resp.status_code == 403
    assert len(transcript_store) == 0


def test_empty_transcript_is_rejected(client):
    _, token = _tokens(client)
    resp = client.post("/api/chat/transcript", json={"displayName": "Ann", "token": token, "messages": []})
    assert resp.status_code == 400


def test_transcript_mail_failure_is_reported(transcript_store):
    class BrokenMailer:
        recipient = "support@example.com"

        def send(self, display_name, body):
            raise smtplib.SMTPException("relay denied")

    client = create_app(RelayTestConfig, openai_client=FakeOpenAI(), transcript_store=transcript_store,
                        mailer=BrokenMailer()).test_client()
    _, token = _tokens(client)
    resp = client.post("/api/chat/transcript", json=_transcript_payload(token))
    assert resp.status_code == 502
    assert resp.get_json()["ok"] is False
    assert "relay denied" not in resp.get_data(as_text=True)


def test_health(client):
    data = client.get("/api/health").get_json()
    assert data["status"] == "healthy"
    assert data["redis"]["status"] == "not_configured"
    assert data["relay"]["configured"] is True
    assert data["session"]["type"] == "cookie"
