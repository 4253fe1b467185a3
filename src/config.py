"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Relay configuration. All values come from environment variables."""

    # Lemur upstream
    lemur_api_key: str = Field(default="")
    lemur_base_url: str = Field(default="http://lemurchat.anfans.cn/api")
    lemur_stream_path: str = Field(default="/chat/stream")
    lemur_system_prompt: str = Field(default="")
    http_timeout: float = Field(default=30.0)

    # Stream decoding
    empty_messages_limit: int = Field(default=300)
    stream_data_prefix: str = Field(default="data: ")
    stream_error_prefix: str = Field(default='data: {"error":')
    stream_done_marker: str = Field(default="[DONE]")
    error_buffer_limit: int = Field(default=1024 * 1024)

    # Database
    database_path: Path = Field(default=Path("data/lemur.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Conversation
    root_parent_id: str = Field(default="chatcmpl-start")
    max_context_depth: int = Field(default=500)
    conversation_window_size: int = Field(default=0)
    storage_timeout: float = Field(default=10.0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_window_size(self) -> int | None:
        """Return the context window, or None when unlimited (0 or negative)."""
        if self.conversation_window_size <= 0:
            return None
        return self.conversation_window_size

    def get_stream_url(self) -> str:
        """Join LEMUR_BASE_URL and LEMUR_STREAM_PATH with exactly one slash."""
        return f"{self.lemur_base_url.rstrip('/')}/{self.lemur_stream_path.lstrip('/')}"


settings = Settings()
