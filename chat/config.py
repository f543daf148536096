# chat/config.py
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_APP_URL = "http://localhost:3000"
DEFAULT_CHAT_MODEL = "google/gemini-2.5-flash-preview-05-20"
DEFAULT_TITLE_MODEL = "google/gemini-2.0-flash-lite-001"
DEFAULT_SUMMARY_MODEL = "google/gemini-2.0-flash-lite-001"
DEFAULT_TIMEOUT_S = 60.0


def _clean_key(value: str | None) -> str | None:
    """Strip whitespace and one pair of surrounding quotes (common in .env files)."""
    if not value:
        return None
    v = value.strip()
    if len(v) >= 2 and v[0] in "\"'" and v[-1] in "\"'":
        v = v[1:-1].strip()
    return v or None


@dataclass(frozen=True)
class DuckConfig:
    """Everything the chat app needs from the environment, built once at start-up."""

    openrouter_api_key: str | None = None
    openrouter_base_url: str = DEFAULT_BASE_URL
    app_url: str = DEFAULT_APP_URL
    app_title: str = "The Duck"
    default_model: str = DEFAULT_CHAT_MODEL
    title_model: str = DEFAULT_TITLE_MODEL
    summary_model: str = DEFAULT_SUMMARY_MODEL
    request_timeout_s: float = DEFAULT_TIMEOUT_S
    supabase_url: str | None = None
    supabase_key: str | None = None

    @property
    def has_openrouter(self) -> bool:
        return bool(self.openrouter_api_key)

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_settings(cls, settings) -> "DuckConfig":
        def _get(name, default=None):
            value = getattr(settings, name, None)
            return value if value not in (None, "") else default

        try:
            timeout = float(_get("OPENROUTER_TIMEOUT_S", DEFAULT_TIMEOUT_S))
        except (TypeError, ValueError):
            timeout = DEFAULT_TIMEOUT_S

        return cls(
            openrouter_api_key=_clean_key(_get("OPENROUTER_API_KEY")),
            openrouter_base_url=str(_get("OPENROUTER_BASE_URL", DEFAULT_BASE_URL)).rstrip("/"),
            app_url=_get("APP_URL", DEFAULT_APP_URL),
            default_model=_get("DUCK_DEFAULT_MODEL", DEFAULT_CHAT_MODEL),
            title_model=_get("DUCK_TITLE_MODEL", DEFAULT_TITLE_MODEL),
            summary_model=_get("DUCK_SUMMARY_MODEL", DEFAULT_SUMMARY_MODEL),
            request_timeout_s=timeout,
            supabase_url=_get("SUPABASE_URL"),
            supabase_key=_clean_key(_get("SUPABASE_SERVICE_ROLE_KEY")),
        )

    def summary(self) -> dict:
        """Non-secret view of the configuration, for the status endpoint."""
        return {
            "hasOpenRouterKey": self.has_openrouter,
            "hasSupabaseUrl": bool(self.supabase_url),
            "hasSupabaseKey": bool(self.supabase_key),
            "appUrl": self.app_url,
            "defaultModel": self.default_model,
            "titleModel": self.title_model,
            "summaryModel": self.summary_model,
        }
