from urllib.parse import urlparse

from django.conf import settings
from django.core.checks import Tags, Warning, register

from .config import DuckConfig


@register(Tags.compatibility)
def check_environment(app_configs, **kwargs):
    """Environment validation: warn early about keys the chat endpoints rely on."""
    cfg = DuckConfig.from_settings(settings)
    issues = []

    if not cfg.openrouter_api_key:
        issues.append(Warning(
            "OPENROUTER_API_KEY is not set; chat streaming is disabled and titles/summaries use fallbacks.",
            id="chat.W001",
        ))
    elif not cfg.openrouter_api_key.startswith("sk-or-"):
        issues.append(Warning("OPENROUTER_API_KEY should start with 'sk-or-'.", id="chat.W002"))

    if cfg.supabase_url:
        parsed = urlparse(cfg.supabase_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            issues.append(Warning("SUPABASE_URL must be a valid URL.", id="chat.W003"))
    if not cfg.has_supabase:
        issues.append(Warning(
            "SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY missing; titles and summaries will not be persisted.",
            id="chat.W004",
        ))
    return issues
