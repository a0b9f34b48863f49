import hmac
import os
import secrets
from datetime import datetime, timezone

from flask import Flask, current_app, request, session
from flask_cors import CORS
from flask_session import Session
from pydantic import ValidationError
import redis
import structlog

from config import get_config
from models import RelayRequest, RelayResponse, TranscriptAck, TranscriptRequest, WidgetSettings
from relay import NotConfigured, TransportError, UpstreamError, build_client, relay
from transcripts import (
    FileTranscriptStore, RedisTranscriptStore, TranscriptDeliveryError, TranscriptMailer, deliver_transcript,
)
from utils import configure_logging, validate_input

logger = structlog.get_logger()

SEND_MESSAGE_ACTION = "echo5_chatbot_send_message"
TRANSCRIPT_ACTION = "echo5_send_chat_transcript"

NOT_CONFIGURED_MESSAGE = "The chat service is not configured. Please contact the site administrator."
TRANSPORT_ERROR_MESSAGE = "Could not reach the assistant. Please try again."
UPSTREAM_ERROR_MESSAGE = "The assistant could not answer right now. Please try again."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


def issue_token(action: str) -> str:
    """Return the per-session anti-forgery token for an action, creating it once"""
    tokens = session.get("tokens", {})
    if action not in tokens:
        tokens[action] = secrets.token_urlsafe(24)
        session["tokens"] = tokens
    return tokens[action]


def check_token(action: str, supplied: str) -> bool:
    expected = session.get("tokens", {}).get(action)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected, supplied)


def _request_data() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _error(message: str, status: int):
    return RelayResponse.failure(message).to_envelope(), status


def create_app(config_object=None, openai_client=None, transcript_store=None, mailer=None) -> Flask:
    cfg = config_object or get_config()
    configure_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config.from_object(cfg)
    app.secret_key = cfg.SECRET_KEY
    origins = cfg.get_cors_origins()
    CORS(app, origins=origins, supports_credentials=origins != ["*"])

    # Redis session configuration
    redis_client = None
    if cfg.REDIS_URL:
        try:
            redis_client = redis.from_url(cfg.REDIS_URL)
            redis_client.ping()
            app.config['SESSION_TYPE'] = 'redis'
            app.config['SESSION_REDIS'] = redis_client
            logger.info("Redis session storage configured successfully")
        except redis.RedisError as e:
            logger.error("Failed to connect to Redis, falling back to filesystem sessions", error=str(e))
            redis_client = None
            app.config['SESSION_TYPE'] = 'filesystem'

    if app.config.get('SESSION_TYPE'):
        Session(app)
        if app.config['SESSION_TYPE'] == 'filesystem':
            logger.warning("Using filesystem sessions - not recommended for production")

    if transcript_store is None:
        if redis_client is not None:
            transcript_store = RedisTranscriptStore(redis_client, cfg.TRANSCRIPT_TTL)
        else:
            transcript_store = FileTranscriptStore(cfg.TRANSCRIPT_DIR)

    app.extensions["echo5"] = {
        "config": cfg,
        "openai_client": openai_client if openai_client is not None else build_client(cfg),
        "transcript_store": transcript_store,
        "mailer": mailer if mailer is not None else TranscriptMailer.from_config(cfg),
        "redis": redis_client,
        "settings": WidgetSettings.from_config(cfg),
    }

    register_routes(app)
    return app


def register_routes(app: Flask) -> None:

    @app.route("/api/chat/config")
    def chat_config():
        """Widget texts, feature flags and this session's anti-forgery tokens"""
        ext = current_app.extensions["echo5"]
        data = ext["settings"].model_dump()
        data["sendMessageToken"] = issue_token(SEND_MESSAGE_ACTION)
        data["transcriptToken"] = issue_token(TRANSCRIPT_ACTION)
        return data

    @app.route("/api/chat/message", methods=["POST"])
    def chat_message():
        cfg = current_app.config
        ext = current_app.extensions["echo5"]
        try:
            body = RelayRequest.model_validate(_request_data())
        except ValidationError as e:
            logger.warning("Malformed relay request", errors=e.error_count())
            return _error("Invalid request", 400)

        if not check_token(SEND_MESSAGE_ACTION, body.token):
            logger.warning("Anti-forgery check failed", action=SEND_MESSAGE_ACTION)
            return _error("Unauthorized", 403)

        is_valid, message = validate_input(body.message, cfg["MAX_INPUT_LENGTH"])
        if not is_valid:
            logger.warning("Invalid input", error=message)
            return _error(message, 400)

        try:
            response = relay(
                message,
                body.display_name.strip(),
                body.live_agent_mode,
                ext["config"],
                client=ext["openai_client"],
            )
        except NotConfigured:
            logger.error("Relay not configured: missing upstream credential")
            return _error(NOT_CONFIGURED_MESSAGE, 200)
        except TransportError as e:
            logger.error("Relay transport error", reason=e.reason)
            return _error(TRANSPORT_ERROR_MESSAGE, 200)
        except UpstreamError as e:
            logger.error("Relay upstream error", upstream_message=e.message, status_code=e.status_code)
            return _error(UPSTREAM_ERROR_MESSAGE, 200)
        except Exception as e:
            logger.exception("Unexpected error in relay endpoint", error=str(e))
            return _error(UNEXPECTED_ERROR_MESSAGE, 500)

        return response.to_envelope()

    @app.route("/api/chat/transcript", methods=["POST"])
    def chat_transcript():
        ext = current_app.extensions["echo5"]
        try:
            body = TranscriptRequest.model_validate(_request_data())
        except ValidationError as e:
            logger.warning("Malformed transcript request", errors=e.error_count())
            return TranscriptAck(ok=False, message="Invalid request").model_dump(), 400

        if not check_token(TRANSCRIPT_ACTION, body.token):
            logger.warning("Anti-forgery check failed", action=TRANSCRIPT_ACTION)
            return TranscriptAck(ok=False, message="Unauthorized").model_dump(), 403

        if not body.messages:
            return TranscriptAck(ok=False, message="No conversation to send.").model_dump(), 400

        try:
            transcript_id = deliver_transcript(
                body.display_name.strip() or "Anonymous",
                body.messages,
                ext["transcript_store"],
                ext["mailer"],
            )
        except TranscriptDeliveryError as e:
            logger.error("Transcript delivery failed", error=str(e))
            return TranscriptAck(ok=False, message="Could not deliver transcript.").model_dump(), 502

        logger.info("Transcript delivered", transcript_id=transcript_id, message_count=len(body.messages))
        return TranscriptAck(ok=True, message="Transcript sent.").model_dump()

    @app.route("/api/health")
    def health():
        """Health check endpoint"""
        ext = current_app.extensions["echo5"]
        redis_status = "not_configured"
        redis_error = None
        if current_app.config.get("REDIS_URL"):
            if ext["redis"] is None:
                redis_status = "failed_to_initialize"
            else:
                try:
                    ext["redis"].ping()
                    redis_status = "connected"
                except redis.RedisError as e:
                    redis_status = "connection_failed"
                    redis_error = str(e)

        return {
            "status": "healthy",
            "redis": {"status": redis_status, "error": redis_error},
            "session": {
                "type": current_app.config.get("SESSION_TYPE") or "cookie",
                "secure_cookies": current_app.config.get("SESSION_COOKIE_SECURE", False),
            },
            "relay": {"configured": ext["openai_client"] is not None},
            "transcripts": {"email": ext["mailer"] is not None},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


if __name__ == "__main__":
    # Development server only
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5001)), debug=True)
