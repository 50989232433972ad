"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK (Junior Developer Guide) ───────────────────────
#
# This class uses pydantic-settings to automatically read configuration
# from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g., OPENAI_API_KEY=sk-abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field name `numverify_api_key` maps to env var `NUMVERIFY_API_KEY`.
# Empty strings mean "not configured": the factories in main.py skip
# providers whose credentials are blank, and the NumVerify verifier
# reports a configuration error only when a caller actually asks for it.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client knowledge agent settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === LLM Providers ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    llm_provider: str = ""  # "anthropic" | "openai"; empty = first configured

    # === Storage ===
    database_path: str = "data/knowledge.db"
    upload_dir: str = "data/uploads"
    max_upload_bytes: int = 10 * 1024 * 1024

    # === Google Sheets ===
    # OAuth bearer token for the Sheets REST API (service account or user).
    google_sheets_access_token: str = ""
    google_sheets_base_url: str = "https://sheets.googleapis.com/v4/spreadsheets"

    # === Leads verification backends ===
    email_verifier_url: str = "http://localhost:8080/v1/check_email"
    phone_verifier_url: str = "http://localhost:8081/validate"
    numverify_url: str = "http://apilayer.net/api/validate"
    numverify_api_key: str = ""
    email_backend_container: str = "reacher"
    email_backend_image: str = "reacherhq/backend:latest"
    email_backend_port: int = 8080
    phone_backend_command: str = "node phone-server.js"
    phone_backend_cwd: str = "."

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = ""  # comma-separated; empty = allow all

    def get_available_llm_providers(self) -> list[str]:
        """Return a list of LLM provider names that have non-empty API keys configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        return providers

    def get_cors_origins(self) -> list[str] | None:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or None
