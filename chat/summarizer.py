# chat/summarizer.py
from __future__ import annotations

import copy
import json
import logging
import re
from typing import Any, Dict, List, Optional

from .errors import ParseError, PersistenceError, UpstreamError
from .openrouter import OpenRouterClient
from .repo import ChatStore
from .serializers import SummarySerializer
from .titles import derivable_messages

log = logging.getLogger(__name__)

MAX_LEARNING_PREFERENCES = 10

DEFAULT_SUMMARY: Dict[str, Any] = {
    "summary": "Chat session completed",
    "keyTopics": [],
    "userPreferences": {
        "explicit": {},
        "implicit": {
            "writingStyle": {
                "formality": 0.5,
                "verbosity": 0.5,
                "technicalLevel": 0.5,
                "preferredResponseLength": 0.5,
            }
        },
    },
    "learningPreferences": [],
}

SUMMARY_PROMPT = """You are an AI assistant tasked with analyzing a chat conversation and providing:
1. A concise summary of the main points discussed
2. Key topics covered
3. Analysis of the user's writing style and preferences
4. Specific learning preferences with weights from -10 (strong dislike) to +10 (strong like)

IMPORTANT: You MUST respond with ONLY a valid JSON object. Do not include any text before or after the JSON. Do not use markdown code blocks.

Format your response as a JSON object with the following structure:
{
  "summary": "Brief summary of the conversation",
  "keyTopics": ["topic1", "topic2"],
  "userPreferences": {
    "explicit": {},
    "implicit": {
      "writingStyle": {
        "formality": 0.5,
        "verbosity": 0.5,
        "technicalLevel": 0.5,
        "preferredResponseLength": 0.5
      }
    }
  },
  "learningPreferences": [
    {
      "category": "topic|style|format|approach|subject|tone|complexity|examples|explanation",
      "preference_key": "specific preference identifier",
      "preference_value": "optional description",
      "weight": 5,
      "confidence": 0.8
    }
  ]
}

Writing style scalars are between 0 and 1: formality (0 casual, 1 formal), verbosity (0 concise, 1 detailed),
technicalLevel (0 basic, 1 technical), preferredResponseLength (0 short, 1 long).

Extract up to 10 learning preferences from the FULL conversation, focusing on actual topics and content
("I like goats" -> {"category": "topic", "preference_key": "goats", "weight": 7}).
Explicit statements ("I love/hate X") weigh +-7 to +-10, strong engagement +5 to +7, mild interest +2 to +5,
topic avoidance -2 to -5, clear rejection -7 to -10."""

# ===== JSON helpers =====

_CODEFENCE = re.compile(r"^\s*```(?:json)?\s*$", re.I | re.M)
_JSON_SLOP = re.compile(r"\{.*\}", re.S)
_TRAILING_COMMAS = re.compile(r",\s*([}\]])")


def default_summary() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_SUMMARY)


def parse_summary(text: str) -> Dict[str, Any]:
    """
    Strip code fences / surrounding prose, parse, and validate the summary
    object. Raises ParseError on anything that does not fit the schema.
    """
    t = _CODEFENCE.sub("", text or "").strip()
    if not t.startswith("{"):
        m = _JSON_SLOP.search(t)
        if not m:
            raise ParseError("model returned plain text instead of JSON")
        t = m.group(0)

    try:
        obj = json.loads(t)
    except ValueError:
        try:
            obj = json.loads(_TRAILING_COMMAS.sub(r"\1", t))
        except ValueError as e:
            raise ParseError(f"invalid_json: {e}") from e

    ser = SummarySerializer(data=obj)
    if not ser.is_valid():
        raise ParseError(f"bad_schema: {ser.errors}")
    data = json.loads(json.dumps(ser.validated_data))
    data["learningPreferences"] = data["learningPreferences"][:MAX_LEARNING_PREFERENCES]
    return data


class ConversationSummarizer:
    """Summarizes a finished conversation; never fails from the caller's point of view."""

    def __init__(self, llm: Optional[OpenRouterClient], store: Optional[ChatStore], model: str):
        self.llm = llm
        self.store = store
        self.model = model

    def _request(self, messages: List[Dict[str, Any]]) -> List[Dict[str, str]]:
        return [{"role": "system", "content": SUMMARY_PROMPT}] + [
            {"role": m.get("role") or "user", "content": str(m.get("content") or "")}
            for m in messages
        ]

    def _persist(self, summary: Dict[str, Any], session_id: str, user_id: str) -> None:
        # ownership check first: the service key bypasses row-level security
        self.store.get_session_title(session_id, user_id)
        self.store.insert_summary(session_id, summary)
        log.info("saved chat summary sid=%s", session_id)

        saved = 0
        for pref in summary.get("learningPreferences") or []:
            try:
                self.store.upsert_learning_preference(user_id, pref)
                saved += 1
            except PersistenceError as e:
                log.error("learning preference %s not saved: %s", pref.get("preference_key"), e)
        if saved:
            log.info("saved %d learning preference(s) uid=%s", saved, user_id)

    def summarize(
        self,
        messages: List[Any],
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        usable = derivable_messages(messages)
        if self.llm is None or not usable:
            log.info("summary fallback (no upstream client or no messages)")
            return default_summary()

        try:
            raw = self.llm.chat(
                self._request(usable),
                self.model,
                temperature=0.3,
                response_format={"type": "json_object"},
            )
            if not raw.strip():
                raise ParseError("empty summary content")
            summary = parse_summary(raw)
        except UpstreamError as e:
            log.warning("summary fallback: %s", e)
            return default_summary()

        if session_id and user_id and self.store is not None:
            try:
                self._persist(summary, session_id, user_id)
            except PersistenceError as e:
                log.error("summary fallback, persistence failed sid=%s err=%s", session_id, e)
                return default_summary()
        return summary
