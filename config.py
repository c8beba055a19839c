"""Application configuration."""

from __future__ import annotations

import os
from pathlib import Path


class Config:
    """Base configuration for the preset camera backend."""

    BASE_DIR = Path(__file__).resolve().parent
    STORAGE_DIR = BASE_DIR / "storage"
    DB_PATH = STORAGE_DIR / "app.db"

    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "change-this-secret")
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash-preview-image")
    GEMINI_ENDPOINT = os.environ.get("GEMINI_ENDPOINT", "https://generativelanguage.googleapis.com/v1beta")
    GEMINI_TIMEOUT = int(os.environ.get("GEMINI_TIMEOUT", "60"))

    # Database
    DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DB_PATH}")

    # Factory preset catalog (wire-format JSON array)
    PRESETS_PATH = Path(os.environ.get("PRESETS_PATH", str(BASE_DIR / "presets.json")))

    # Prompt defaults; requests may override them per capture.
    MASTER_PROMPT_ENABLED = os.environ.get("MASTER_PROMPT_ENABLED", "false").strip().lower() in {"1", "true", "yes", "on"}
    MASTER_PROMPT_TEXT = os.environ.get("MASTER_PROMPT_TEXT", "")
    ASPECT_RATIO = os.environ.get("ASPECT_RATIO", "none")

    # File settings
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB captures

    @classmethod
    def ensure_directories(cls) -> None:
        """Ensure required directories exist."""
        for directory in (cls.STORAGE_DIR,):
            directory.mkdir(parents=True, exist_ok=True)
