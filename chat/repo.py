# chat/repo.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from .config import DuckConfig
from .errors import PersistenceError

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "chat_sessions"
SUMMARIES_TABLE = "chat_summaries"
LEARNING_PREFERENCE_RPC = "upsert_learning_preference_v2"

SUMMARY_COLUMNS = "id, session_id, summary, key_topics, user_preferences, writing_style_analysis, created_at"


def get_supabase(config: DuckConfig) -> Client | None:
    """Server-side client (service role key). None when credentials are missing."""
    if not config.has_supabase:
        return None
    return create_client(config.supabase_url, config.supabase_key)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatStore:
    """
    Thin supabase-py wrapper over the chat tables.

    - Every session query is scoped by id AND owner, since the service key
      bypasses row-level security.
    - Any client/API failure is re-raised as PersistenceError.
    """

    def __init__(self, client: Client):
        self.client = client

    def get_session_title(self, session_id: str, user_id: str) -> str:
        try:
            res = (
                self.client.table(SESSIONS_TABLE)
                .select("title")
                .eq("id", session_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("session lookup failed sid=%s err=%s", session_id, e)
            raise PersistenceError(f"session lookup failed: {e}") from e

        rows = res.data or []
        if not rows:
            raise PersistenceError("Chat session not found or access denied")
        return rows[0].get("title") or ""

    def update_session_title(self, session_id: str, user_id: str, title: str) -> None:
        try:
            res = (
                self.client.table(SESSIONS_TABLE)
                .update({"title": title, "updated_at": _now()})
                .eq("id", session_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            logger.error("title update failed sid=%s err=%s", session_id, e)
            raise PersistenceError(f"title update failed: {e}") from e
        if not res.data:
            raise PersistenceError("title update matched no session")

    def insert_summary(self, session_id: str, summary: Dict[str, Any]) -> Dict[str, Any]:
        prefs = summary.get("userPreferences") or {}
        row = {
            "id": uuid.uuid4().hex,
            "session_id": session_id,
            "summary": summary.get("summary") or "",
            "key_topics": summary.get("keyTopics") or [],
            "user_preferences": prefs,
            "writing_style_analysis": (prefs.get("implicit") or {}).get("writingStyle") or {},
        }
        try:
            res = self.client.table(SUMMARIES_TABLE).insert(row).execute()
        except Exception as e:
            logger.error("summary insert failed sid=%s err=%s", session_id, e)
            raise PersistenceError(f"summary insert failed: {e}") from e
        return (res.data or [row])[0]

    def upsert_learning_preference(self, user_id: str, pref: Dict[str, Any]) -> None:
        params = {
            "target_user_id": user_id,
            "pref_category": pref["category"],
            "pref_key": pref["preference_key"],
            "pref_value": pref.get("preference_value") or None,
            "pref_weight": pref["weight"],
            "pref_source": "chat_summary",
            "pref_confidence": pref.get("confidence", 0.8),
        }
        try:
            self.client.rpc(LEARNING_PREFERENCE_RPC, params).execute()
        except Exception as e:
            raise PersistenceError(f"learning preference upsert failed: {e}") from e

    def recent_summaries(self, user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        try:
            res = (
                self.client.table(SUMMARIES_TABLE)
                .select(f"{SUMMARY_COLUMNS}, chat_sessions!inner(user_id)")
                .eq("chat_sessions.user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("summary listing failed uid=%s err=%s", user_id, e)
            raise PersistenceError(f"summary listing failed: {e}") from e
        out = []
        for row in res.data or []:
            row = dict(row)
            row.pop("chat_sessions", None)
            out.append(row)
        return out


def get_store(config: DuckConfig) -> Optional[ChatStore]:
    client = get_supabase(config)
    return ChatStore(client) if client is not None else None
