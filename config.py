"""
Configuration settings for the Echo5 chatbot relay service
"""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "supersecret")

    # Redis Configuration
    REDIS_URL = os.getenv("REDIS_URL")

    # Session Configuration (holds the anti-forgery tokens)
    SESSION_TYPE = 'redis' if REDIS_URL else 'filesystem'
    SESSION_PERMANENT = False
    SESSION_USE_SIGNER = True
    SESSION_KEY_PREFIX = 'echo5:'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
    SESSION_COOKIE_SAMESITE = 'Lax'

    # OpenAI relay
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")
    OPENAI_BASE_URL = (os.getenv("OPENAI_BASE_URL", "").strip() or None)
    SYSTEM_INSTRUCTION = "You are a helpful customer service assistant."
    RELAY_MAX_TOKENS = int(os.getenv("RELAY_MAX_TOKENS", "150"))
    RELAY_TEMPERATURE = float(os.getenv("RELAY_TEMPERATURE", "0.7"))
    RELAY_TIMEOUT_S = float(os.getenv("RELAY_TIMEOUT_S", "15"))

    # Input Validation
    MAX_INPUT_LENGTH = int(os.getenv("MAX_INPUT_LENGTH", "1000"))

    # CORS Settings
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Transcripts
    TRANSCRIPT_DIR = os.getenv("TRANSCRIPT_DIR", "transcripts")
    TRANSCRIPT_TTL = timedelta(days=7)
    TRANSCRIPT_EMAIL_TO = os.getenv("TRANSCRIPT_EMAIL_TO")
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM = os.getenv("SMTP_FROM", "chatbot@localhost")

    # Widget texts (%userName%, %oldName%, %newName% are substituted client-side)
    WIDGET_TEXT = {
        "header_text": os.getenv("ECHO5_HEADER_TEXT", "AI Chatbot"),
        "name_prompt_text": os.getenv(
            "ECHO5_NAME_PROMPT_TEXT",
            "Welcome! Please enter your name to start chatting: <br><small>You can change your name later using /name [new_name]</small>",
        ),
        "welcome_message_template": os.getenv(
            "ECHO5_WELCOME_TEMPLATE", "Hello, <strong>%userName%</strong>! How can I help you?"
        ),
        "welcome_back_template": os.getenv(
            "ECHO5_WELCOME_BACK_TEMPLATE", "Welcome back, <strong>%userName%</strong>! How can I help you?"
        ),
        "name_change_success": os.getenv(
            "ECHO5_NAME_CHANGE_SUCCESS",
            "Your name has been changed from <strong>%oldName%</strong> to <strong>%newName%</strong>.",
        ),
        "name_change_prompt": os.getenv(
            "ECHO5_NAME_CHANGE_PROMPT",
            "Please provide a new name after the /name command. Example: /name John Doe",
        ),
        "enter_name_alert": os.getenv("ECHO5_ENTER_NAME_ALERT", "Please enter your name."),
        "end_chat_confirm": os.getenv(
            "ECHO5_END_CHAT_CONFIRM", "Are you sure you want to end the chat? A transcript will be sent."
        ),
        "chat_ended_message": os.getenv("ECHO5_CHAT_ENDED_MESSAGE", "Chat ended. Thank you!"),
        "send_button_text": os.getenv("ECHO5_SEND_BUTTON_TEXT", "Send"),
        "sending_button_text": os.getenv("ECHO5_SENDING_BUTTON_TEXT", "Sending..."),
        "end_chat_button_text": os.getenv("ECHO5_END_CHAT_BUTTON_TEXT", "End Chat"),
        "change_name_button_text": os.getenv("ECHO5_CHANGE_NAME_BUTTON_TEXT", "Change Name"),
        "live_agent_on_label": os.getenv("ECHO5_LIVE_AGENT_ON_LABEL", "Back to AI"),
        "live_agent_off_label": os.getenv("ECHO5_LIVE_AGENT_OFF_LABEL", "Live Agent"),
        "live_agent_on_message": os.getenv(
            "ECHO5_LIVE_AGENT_ON_MESSAGE", "You are now in the live agent queue. An agent will reply here."
        ),
        "live_agent_off_message": os.getenv(
            "ECHO5_LIVE_AGENT_OFF_MESSAGE", "You are now chatting with the AI assistant."
        ),
    }

    # Widget features
    FEATURE_MINIMIZABLE = _env_flag("ECHO5_MINIMIZABLE")
    FEATURE_ENDABLE = _env_flag("ECHO5_ENDABLE")
    FEATURE_SPEECH = _env_flag("ECHO5_SPEECH")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def get_cors_origins(cls) -> list:
        """Get CORS origins as a list"""
        if cls.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in cls.CORS_ORIGINS.split(",") if origin.strip()]


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SESSION_COOKIE_SECURE = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    """Testing configuration: signed-cookie sessions, no Redis, no mail"""
    TESTING = True
    DEBUG = False
    SESSION_TYPE = None
    REDIS_URL = None
    OPENAI_API_KEY = "test-key"
    TRANSCRIPT_EMAIL_TO = None


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on environment"""
    env = os.getenv('FLASK_ENV', 'default').lower()
    return config.get(env, config['default'])
