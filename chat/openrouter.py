# chat/openrouter.py

import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests
from django.core.cache import cache

from .config import DuckConfig
from .errors import ParseError, UpstreamConfigError, UpstreamError

logger = logging.getLogger(__name__)

# ===== Base config =====

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
CONNECT_TIMEOUT_S = 10

OPTIONAL_PARAMS = ("top_p", "frequency_penalty", "presence_penalty", "response_format")

MODEL_CATALOG_CACHE_KEY = "openrouter:models"
MODEL_CATALOG_TTL_S = 60 * 60

CURATED_MODELS = [
    {"id": "google/gemini-2.5-flash-preview-05-20", "name": "Gemini 2.5 Flash Preview", "provider": "Google"},
    {"id": "google/gemini-2.5-pro-preview-05-06", "name": "Gemini 2.5 Pro Preview", "provider": "Google"},
    {"id": "deepseek/deepseek-chat-v3-0324", "name": "DeepSeek Chat v3", "provider": "DeepSeek"},
    {"id": "anthropic/claude-sonnet-4", "name": "Claude Sonnet 4", "provider": "Anthropic"},
    {"id": "openai/gpt-4o-mini", "name": "GPT-4o Mini", "provider": "OpenAI"},
]


# ===== Wire helpers =====

def _to_wire(msg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a chat message to the OpenAI-compatible wire shape.

    Image attachments become vision content parts; everything else is sent
    as plain text content.
    """
    role = msg.get("role") or "user"
    content = msg.get("content") or ""
    attachments = msg.get("attachments") or []
    images = [
        a for a in attachments
        if isinstance(a, dict) and str(a.get("mime_type") or "").startswith("image/") and a.get("url")
    ]
    if not images:
        return {"role": role, "content": content}

    parts: List[Dict[str, Any]] = []
    if content.strip():
        parts.append({"type": "text", "text": content})
    for a in images:
        parts.append({"type": "image_url", "image_url": {"url": a["url"]}})
    logger.debug("sending %d image part(s) upstream", len(images))
    return {"role": role, "content": parts}


def _error_message(resp: requests.Response) -> str:
    """Best-effort extraction of the upstream error text."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return resp.reason or f"HTTP {resp.status_code}"


def _model_display_name(model_id: str) -> str:
    for m in CURATED_MODELS:
        if m["id"] == model_id:
            return m["name"]
    parts = model_id.split("/", 1)
    return parts[1] if len(parts) > 1 else model_id


# ===== Client =====

class OpenRouterClient:
    """Thin requests-based adapter over the OpenRouter chat-completion API."""

    def __init__(self, config: DuckConfig, session: Optional[requests.Session] = None):
        if not config.openrouter_api_key:
            raise UpstreamConfigError("OPENROUTER_API_KEY missing")
        self.config = config
        self._owns_session = session is None
        self.http = session or requests.Session()

    def close(self) -> None:
        """Close the pooled connections of a session this client created itself."""
        if self._owns_session:
            self.http.close()

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.openrouter_api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.config.app_url,
            "X-Title": self.config.app_title,
        }

    @property
    def _timeout(self):
        return (CONNECT_TIMEOUT_S, self.config.request_timeout_s)

    def _payload(self, messages: Sequence[Dict[str, Any]], model: str, stream: bool, options: Dict[str, Any]) -> dict:
        payload = {
            "model": model,
            "messages": [_to_wire(m) for m in messages],
            "stream": stream,
            "temperature": options.get("temperature", DEFAULT_TEMPERATURE),
            "max_tokens": options.get("max_tokens", DEFAULT_MAX_TOKENS),
        }
        for key in OPTIONAL_PARAMS:
            if options.get(key) is not None:
                payload[key] = options[key]
        return payload

    def _post(self, payload: dict, *, stream: bool) -> requests.Response:
        url = f"{self.config.openrouter_base_url}/chat/completions"
        try:
            resp = self.http.post(
                url,
                headers=self._headers,
                json=payload,
                stream=stream,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("openrouter_transport_error model=%s err=%s", payload.get("model"), e)
            raise UpstreamError(f"OpenRouter request failed: {e}") from e

        if not resp.ok:
            message = _error_message(resp)
            logger.warning(
                "openrouter_http_error model=%s status=%s msg=%s",
                payload.get("model"), resp.status_code, message,
            )
            resp.close()
            raise UpstreamError(f"OpenRouter API error: {message}", status=resp.status_code)
        return resp

    def chat(self, messages: Sequence[Dict[str, Any]], model: str, **options) -> str:
        """Single non-streaming completion. Returns the assistant content ('' if absent)."""
        try:
            return self._chat(messages, model, options)
        finally:
            self.close()

    def _chat(self, messages: Sequence[Dict[str, Any]], model: str, options: Dict[str, Any]) -> str:
        resp = self._post(self._payload(messages, model, False, options), stream=False)
        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError("OpenRouter returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise ParseError("OpenRouter returned an unexpected body")
        if data.get("error"):
            err = data["error"]
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise UpstreamError(f"OpenRouter API error: {msg}")

        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    def stream_chat(self, messages: Sequence[Dict[str, Any]], model: str, **options) -> Iterator[str]:
        """
        Streaming completion. Yields text deltas as they arrive.

        Each call opens a new upstream connection. Closing the generator
        closes the HTTP response, which aborts the upstream request.
        """
        try:
            yield from self._stream_chat(messages, model, options)
        finally:
            self.close()

    def _stream_chat(self, messages: Sequence[Dict[str, Any]], model: str, options: Dict[str, Any]) -> Iterator[str]:
        payload = self._payload(messages, model, True, options)
        resp = self._post(payload, stream=True)
        # event streams are UTF-8; requests falls back to ISO-8859-1 for text/* without a charset
        resp.encoding = "utf-8"
        with resp:
            try:
                for line in resp.iter_lines(decode_unicode=True):
                    if not line or not line.startswith("data: "):
                        continue
                    data = line[len("data: "):].strip()
                    if data == "[DONE]":
                        return
                    try:
                        parsed = json.loads(data)
                    except ValueError:
                        logger.error("openrouter_stream_bad_line line=%s", data[:200])
                        continue
                    if isinstance(parsed, dict) and parsed.get("error"):
                        err = parsed["error"]
                        msg = err.get("message") if isinstance(err, dict) else str(err)
                        raise UpstreamError(f"OpenRouter stream error: {msg}")
                    try:
                        content = parsed["choices"][0].get("delta", {}).get("content")
                    except (KeyError, IndexError, TypeError, AttributeError):
                        content = None
                    if content:
                        yield content
            except requests.RequestException as e:
                logger.warning("openrouter_stream_interrupted model=%s err=%s", model, e)
                raise UpstreamError(f"OpenRouter stream interrupted: {e}") from e

    def list_models(self) -> List[Dict[str, Any]]:
        cached = cache.get(MODEL_CATALOG_CACHE_KEY)
        if cached:
            return cached
        try:
            models = self._fetch_models()
        finally:
            self.close()
        cache.set(MODEL_CATALOG_CACHE_KEY, models, MODEL_CATALOG_TTL_S)
        logger.info("cached %d OpenRouter models", len(models))
        return models

    def _fetch_models(self) -> List[Dict[str, Any]]:
        url = f"{self.config.openrouter_base_url}/models"
        try:
            resp = self.http.get(url, headers=self._headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise UpstreamError(f"Failed to fetch models: {e}") from e
        if not resp.ok:
            raise UpstreamError(f"Failed to fetch models: {_error_message(resp)}", status=resp.status_code)
        try:
            raw = resp.json().get("data") or []
        except (ValueError, AttributeError) as e:
            raise ParseError("Model catalog was not JSON") from e

        return [
            {
                "id": m["id"],
                "name": m.get("name") or m["id"],
                "description": m.get("description") or "",
                "pricing": m.get("pricing"),
                "context_length": m.get("context_length"),
                "architecture": m.get("architecture"),
                "top_provider": m.get("top_provider"),
            }
            for m in raw
            if isinstance(m, dict) and m.get("id")
        ]


def default_models() -> List[Dict[str, Any]]:
    """Catalog served when no API key is configured."""
    return [
        {
            "id": m["id"],
            "name": _model_display_name(m["id"]),
            "description": f"{m['provider']} model: {m['id'].split('/', 1)[-1]}",
            "pricing": None,
            "context_length": 16384,
            "architecture": {"modality": "text", "tokenizer": "default", "instruct_type": "chat"},
            "top_provider": {"max_completion_tokens": 4096, "is_moderated": True},
        }
        for m in CURATED_MODELS
    ]
