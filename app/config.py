"""
Process-wide configuration.

Read once at startup and passed into each component constructor:
    from app.config import Settings
    settings = Settings.from_env()
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator


class Settings(BaseModel):
    # ── LINE Messaging API ────────────────────────────────────────────
    line_channel_access_token: str = ""
    line_channel_secret: Optional[str] = None
    line_messaging_api: str = "https://api.line.me/v2/bot/message"
    line_content_api: str = "https://api-data.line.me/v2/bot/message"

    # ── Dialogflow (text/NLU routing) ─────────────────────────────────
    dialogflow_agent_id: Optional[str] = None
    dialogflow_webhook_base: str = "https://bots.dialogflow.com/line"

    # ── OpenAI vision ─────────────────────────────────────────────────
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    vision_max_tokens: int = 1000
    vision_temperature: float = 0.2

    # ── HTTP / storage ────────────────────────────────────────────────
    http_timeout: float = 30.0
    upload_dir: str = "storage/uploads"
    public_base_url: Optional[str] = None
    max_image_size: int = 5 * 1024 * 1024
    log_level: str = "INFO"

    @field_validator("public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return (v or "").rstrip("/") or None

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def from_env(cls) -> "Settings":
        """Each field reads the env var of the same name, upper-cased; unset or empty keeps the default."""
        load_dotenv()
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(name.upper())
            if raw:
                values[name] = raw
        return cls(**values)

    @property
    def line_auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.line_channel_access_token}"}
