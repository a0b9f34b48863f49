"""
Durable key/value preferences for the chat front-end.
"""
from __future__ import annotations

import json
import os
from typing import Dict, Optional

import structlog

from utils import safe_json_loads

logger = structlog.get_logger(__name__)

USER_NAME_KEY = "echo5_user_name"
SPEECH_ENABLED_KEY = "echo5_speech_enabled"
MINIMIZED_KEY = "echo5_minimized"


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def persist(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class JsonFileStorage:
    """Keeps preferences in a single JSON file, rewritten on every change."""

    def __init__(self, path: str) -> None:
        self.path = os.path.expanduser(path)
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = safe_json_loads(f.read(), {})
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed preferences file", path=self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def persist(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
