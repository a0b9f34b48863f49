"""
Voice selection and the pyttsx3 speaker used by the terminal client.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

import pyttsx3
import structlog

logger = structlog.get_logger(__name__)

# Names that usually belong to a natural-sounding English voice
COMMON_VOICE_NAMES = ("Samantha", "Victoria", "Karen", "Zira", "Susan", "Google US English")
EXCLUDED_REGIONAL_VARIANT = "en-in"


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    lang: str = ""


def _is_english(voice: Voice) -> bool:
    return voice.lang.lower().replace("_", "-").startswith("en")


def select_voice(voices: Sequence[Voice]) -> Optional[Voice]:
    """
    Pick a voice in order of preference:
    1. female-labelled English voice that is not the en-IN variant
    2. a voice with one of the COMMON_VOICE_NAMES
    3. any English voice
    """
    for v in voices:
        lang = v.lang.lower().replace("_", "-")
        if "female" in v.name.lower() and _is_english(v) and not lang.startswith(EXCLUDED_REGIONAL_VARIANT):
            return v
    for v in voices:
        if any(name.lower() in v.name.lower() for name in COMMON_VOICE_NAMES):
            return v
    for v in voices:
        if _is_english(v):
            return v
    return None


def _decode_lang(raw) -> str:
    # pyttsx3 reports languages as bytes on some drivers
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="ignore").lstrip("\x05")
    return str(raw)


class PyttsxSpeaker:
    """Speaks on a background thread so the chat loop is never blocked."""

    def __init__(self, engine=None):
        if engine is None:
            engine = pyttsx3.init()
        self._engine = engine
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def voices(self) -> List[Voice]:
        out = []
        for v in self._engine.getProperty("voices") or []:
            langs = [_decode_lang(l) for l in (getattr(v, "languages", None) or [])]
            gender = getattr(v, "gender", None) or ""
            name = v.name if "female" not in str(gender).lower() else f"{v.name} (Female)"
            out.append(Voice(id=v.id, name=name, lang=langs[0] if langs else ""))
        return out

    def speak(self, text: str, voice: Optional[Voice]) -> None:
        self.cancel()

        def _run():
            with self._lock:
                try:
                    if voice is not None:
                        self._engine.setProperty("voice", voice.id)
                    self._engine.say(text)
                    self._engine.runAndWait()
                except RuntimeError as e:
                    logger.warning("Speech failed", error=str(e))

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            self._engine.stop()
            self._thread.join(timeout=1.0)
            logger.debug("Speech cancelled")
        self._thread = None
