# chat/titles.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .errors import PersistenceError, UpstreamError, ValidationError
from .openrouter import OpenRouterClient
from .repo import ChatStore

log = logging.getLogger(__name__)

WELCOME_MESSAGE_ID = "welcome-message"
DEFAULT_TITLE = "New Chat"

FALLBACK_MAX_CHARS = 30
FALLBACK_WORDS = 4
AI_MAX_CHARS = 40
AI_MIN_CHARS = 3

TITLE_PROMPT = """You are a title generator. Create a short, descriptive title (2-5 words max) for this conversation.

Rules:
- Maximum 5 words
- Be specific and descriptive
- Avoid generic words like "chat", "conversation", "help"
- Focus on the main topic or question
- Use title case
- No quotes or special characters
- Examples: "Python Data Analysis", "Recipe for Pasta", "React Hooks Guide", "Travel to Japan"

Respond with ONLY the title, nothing else."""

_QUOTES = re.compile(r"['\"]")
_NOT_TITLE_CHARS = re.compile(r"[^\w\s-]")


def _text(msg: Dict[str, Any]) -> str:
    content = msg.get("content")
    return content if isinstance(content, str) else ""


def derivable_messages(messages: Iterable[Any]) -> List[Dict[str, Any]]:
    """Drop non-dict entries and the synthetic welcome greeting."""
    return [m for m in messages or [] if isinstance(m, dict) and m.get("id") != WELCOME_MESSAGE_ID]


def _truncate(text: str, limit: int) -> str:
    return text[: limit - 3] + "..." if len(text) > limit else text


def fallback_title(messages: Iterable[Any]) -> str:
    """
    Deterministic title from the first user message (or first non-system
    message): its first four words, at most 30 characters.
    """
    candidates = [m for m in derivable_messages(messages) if _text(m).strip()]
    chosen = next((m for m in candidates if m.get("role") == "user"), None)
    if chosen is None:
        chosen = next((m for m in candidates if m.get("role") != "system"), None)
    if chosen is None:
        return DEFAULT_TITLE

    words = _text(chosen).split()[:FALLBACK_WORDS]
    return _truncate(" ".join(words), FALLBACK_MAX_CHARS) or DEFAULT_TITLE


def clean_ai_title(raw: str) -> str:
    t = _QUOTES.sub("", raw or "")
    t = _NOT_TITLE_CHARS.sub("", t).strip()
    return _truncate(t, AI_MAX_CHARS)


class TitleGenerator:
    """Picks an AI title when possible, a fallback otherwise, and persists it."""

    def __init__(self, llm: Optional[OpenRouterClient], store: Optional[ChatStore], model: str):
        self.llm = llm
        self.store = store
        self.model = model

    def _ai_title(self, messages: List[Dict[str, Any]]) -> Optional[str]:
        request = [{"role": "system", "content": TITLE_PROMPT}] + [
            {
                "role": "assistant" if m.get("role") == "system" else (m.get("role") or "user"),
                "content": _text(m),
            }
            for m in messages
        ]
        try:
            raw = self.llm.chat(request, self.model, temperature=0.3, max_tokens=40)
        except UpstreamError as e:
            log.warning("title_ai_failed status=%s err=%s", e.status, e)
            return None

        title = clean_ai_title(raw.strip())
        if len(title) < AI_MIN_CHARS:
            log.info("title_ai_rejected raw=%r", raw[:80])
            return None
        return title

    def generate(
        self,
        messages: Any,
        session_id: Any,
        user_id: Optional[str] = None,
        preserve_existing_on_failure: bool = False,
    ) -> Dict[str, Any]:
        if not isinstance(messages, list) or not messages:
            raise ValidationError("Messages array is required")
        if not session_id:
            raise ValidationError("Session ID is required")

        usable = derivable_messages(messages)
        title = fallback_title(usable)
        method = "fallback"

        if self.llm is not None and usable:
            ai_title = self._ai_title(usable)
            if ai_title:
                title, method = ai_title, "ai-generated"

        result = {"title": title, "method": method, "sessionId": session_id, "updated": False}
        if not user_id or self.store is None:
            return result

        try:
            existing = self.store.get_session_title(session_id, user_id) or DEFAULT_TITLE
        except PersistenceError as e:
            log.info("title_not_persisted sid=%s reason=%s", session_id, e)
            return result

        keep_existing = existing != DEFAULT_TITLE and method == "fallback" and (
            preserve_existing_on_failure or title == DEFAULT_TITLE
        )
        if keep_existing:
            result.update(title=existing, method="preserved", updated=True)
            return result

        try:
            self.store.update_session_title(session_id, user_id, title)
            result["updated"] = True
        except PersistenceError as e:
            log.error("title_update_failed sid=%s err=%s", session_id, e)
        return result
