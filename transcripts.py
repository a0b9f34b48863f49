"""transcripts.py – archiving and emailing finished chat transcripts.

Three storage implementations:
1. InMemoryTranscriptStore – default for unit-tests.
2. RedisTranscriptStore – production, entries expire after TRANSCRIPT_TTL.
3. FileTranscriptStore – local development fallback (one JSON file per chat).
"""
from __future__ import annotations

import os
import smtplib
import uuid
from datetime import datetime, timedelta, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional

import structlog

from models import ChatMessage
from utils import safe_json_dumps, strip_tags

logger = structlog.get_logger(__name__)


class TranscriptDeliveryError(Exception):
    """Storing or mailing a transcript failed"""


def format_transcript(display_name: str, messages: List[ChatMessage]) -> str:
    lines = [f"Chat transcript for {display_name}", ""]
    for msg in messages:
        lines.append(f"[{msg.timestamp}] {msg.name}: {strip_tags(msg.text)}")
    return "\n".join(lines)


def _payload(transcript_id: str, display_name: str, messages: List[ChatMessage]) -> Dict:
    return {
        "id": transcript_id,
        "display_name": display_name,
        "received_at": datetime.now(timezone.utc).isoformat(),
        "messages": [m.model_dump() for m in messages],
    }


class BaseTranscriptStore:
    """Interface other components depend on."""

    def save(self, transcript_id: str, display_name: str, messages: List[ChatMessage]) -> None:  # pragma: no cover
        raise NotImplementedError


class InMemoryTranscriptStore(BaseTranscriptStore):
    """Simple dict-based store for dev / unit-tests."""

    def __init__(self) -> None:
        self._store: Dict[str, Dict] = {}

    def save(self, transcript_id: str, display_name: str, messages: List[ChatMessage]) -> None:
        self._store[transcript_id] = _payload(transcript_id, display_name, messages)

    def get(self, transcript_id: str) -> Optional[Dict]:
        return self._store.get(transcript_id)

    def __len__(self) -> int:
        return len(self._store)


class RedisTranscriptStore(BaseTranscriptStore):
    def __init__(self, redis_client, ttl: timedelta = timedelta(days=7)):
        self._redis = redis_client
        self._ttl = ttl

    def save(self, transcript_id: str, display_name: str, messages: List[ChatMessage]) -> None:
        key = f"transcript:{transcript_id}"
        self._redis.setex(key, self._ttl, safe_json_dumps(_payload(transcript_id, display_name, messages)))


class FileTranscriptStore(BaseTranscriptStore):
    def __init__(self, directory: str):
        self._directory = directory

    def save(self, transcript_id: str, display_name: str, messages: List[ChatMessage]) -> None:
        os.makedirs(self._directory, exist_ok=True)
        path = os.path.join(self._directory, f"transcript_{transcript_id}.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(safe_json_dumps(_payload(transcript_id, display_name, messages)))


class TranscriptMailer:
    """Sends formatted transcripts over SMTP."""

    def __init__(self, host: str, port: int, sender: str, recipient: str,
                 user: Optional[str] = None, password: Optional[str] = None):
        self.host = host
        self.port = port
        self.sender = sender
        self.recipient = recipient
        self.user = user
        self.password = password

    @classmethod
    def from_config(cls, cfg) -> Optional["TranscriptMailer"]:
        if not (cfg.TRANSCRIPT_EMAIL_TO and cfg.SMTP_HOST):
            return None
        return cls(cfg.SMTP_HOST, cfg.SMTP_PORT, cfg.SMTP_FROM, cfg.TRANSCRIPT_EMAIL_TO,
                   user=cfg.SMTP_USER, password=cfg.SMTP_PASSWORD)

    def send(self, display_name: str, body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"Chat transcript: {display_name}"
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg.attach(MIMEText(body, "plain", "utf-8"))
        to_list = [a.strip() for a in self.recipient.split(",") if a.strip()]
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.user and self.password:
                smtp.starttls()
                smtp.login(self.user, self.password)
            smtp.sendmail(self.sender, to_list, msg.as_string())


def deliver_transcript(display_name: str, messages: List[ChatMessage],
                       store: BaseTranscriptStore, mailer: Optional[TranscriptMailer] = None) -> str:
    """Archive the transcript and mail it when a mailer is configured. Returns the transcript id."""
    transcript_id = uuid.uuid4().hex
    try:
        store.save(transcript_id, display_name, messages)
    except Exception as e:
        logger.error("Failed to store transcript", transcript_id=transcript_id, error=str(e))
        raise TranscriptDeliveryError("storage failed") from e

    logger.info("Transcript stored", transcript_id=transcript_id, user=display_name, message_count=len(messages))

    if mailer is not None:
        try:
            mailer.send(display_name, format_transcript(display_name, messages))
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to email transcript", transcript_id=transcript_id, error=str(e))
            raise TranscriptDeliveryError("email failed") from e
        logger.info("Transcript emailed", transcript_id=transcript_id, recipient=mailer.recipient)

    return transcript_id
