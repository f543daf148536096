# chat/views.py
import logging
import re

from django.apps import apps
from django_ratelimit.decorators import ratelimit
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .auth import get_authenticated_user_id
from .config import DuckConfig
from .errors import PersistenceError, UpstreamError, ValidationError
from .openrouter import OpenRouterClient, default_models
from .repo import ChatStore, get_supabase
from .sse import event_stream_response
from .summarizer import ConversationSummarizer, default_summary
from .titles import TitleGenerator, fallback_title

log = logging.getLogger(__name__)

CHAT_OPTIONS = ("temperature", "max_tokens", "top_p", "frequency_penalty", "presence_penalty")
MEMORY_CONTEXT_DEFAULT_LIMIT = 5
MEMORY_CONTEXT_MAX_LIMIT = 10

_WORD = re.compile(r"\b\w+\b")


def duck_speak(text: str) -> str:
    return _WORD.sub("quack", text)


def _config() -> DuckConfig:
    return apps.get_app_config("chat").duck


def _llm(cfg: DuckConfig):
    return OpenRouterClient(cfg) if cfg.has_openrouter else None


def _supabase(cfg: DuckConfig):
    try:
        return get_supabase(cfg)
    except Exception:
        log.exception("could not create Supabase client")
        return None


def _body(request) -> dict:
    data = request.data
    return data if isinstance(data, dict) else {}


@api_view(["POST"])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="30/m", method="POST", block=False)
def chat(request):
    """
    Chat completion proxy.
    stream=true (default) -> text/event-stream of {"content"} frames ending in [DONE]
    stream=false          -> {"content": <string>}
    """
    if getattr(request, "limited", False):
        log.warning("chat rate limit exceeded ip=%s", request.META.get("REMOTE_ADDR"))
        return Response({"error": "Too many requests. Please try again later.", "retry_after": "1 minute"}, status=429)

    data = _body(request)
    messages = data.get("messages")
    model = data.get("model")
    if not isinstance(messages, list):
        return Response({"error": "Messages array is required"}, status=400)
    if not model:
        return Response({"error": "Model is required"}, status=400)

    cfg = _config()
    if not cfg.has_openrouter:
        return Response({"error": "OpenRouter API key not configured"}, status=500)

    raw_options = data.get("options") if isinstance(data.get("options"), dict) else {}
    options = {k: raw_options[k] for k in CHAT_OPTIONS if raw_options.get(k) is not None}
    transform = duck_speak if data.get("tone") == "duck" else None
    client = OpenRouterClient(cfg)

    if data.get("stream", True) is not False:
        return event_stream_response(client.stream_chat(messages, model, **options), transform)

    try:
        content = client.chat(messages, model, **options)
    except UpstreamError as e:
        return Response({"error": str(e)}, status=502)
    if transform is not None:
        content = transform(content)
    return Response({"content": content}, status=200)


@api_view(["POST"])
@permission_classes([AllowAny])
def generate_title(request):
    """
    Always 200 with {title, method, sessionId, updated}, except 400 when
    messages or sessionId are missing.
    """
    data = _body(request)
    messages = data.get("messages")
    session_id = data.get("sessionId")

    try:
        cfg = _config()
        supabase = _supabase(cfg)
        user_id = get_authenticated_user_id(request, supabase)
        generator = TitleGenerator(
            llm=_llm(cfg),
            store=ChatStore(supabase) if supabase is not None else None,
            model=cfg.title_model,
        )
        result = generator.generate(
            messages,
            session_id,
            user_id=user_id,
            preserve_existing_on_failure=data.get("preserveExistingOnFailure") is True,
        )
    except ValidationError as e:
        return Response({"error": str(e)}, status=400)
    except Exception as e:
        log.exception("title generation failed sid=%s", session_id)
        salvaged = messages if isinstance(messages, list) else []
        return Response({
            "title": fallback_title(salvaged),
            "method": "fallback",
            "sessionId": session_id,
            "updated": False,
            "error": str(e) or "Unknown error",
        }, status=200)

    log.info("title for sid=%s method=%s updated=%s", session_id, result["method"], result["updated"])
    return Response(result, status=200)


@api_view(["POST"])
@permission_classes([AllowAny])
def summarize(request):
    data = _body(request)
    messages = data.get("messages")
    session_id = data.get("sessionId")
    if not isinstance(messages, list):
        return Response({"error": "Messages array is required"}, status=400)

    try:
        cfg = _config()
        supabase = _supabase(cfg) if session_id else None
        user_id = get_authenticated_user_id(request, supabase)
        summarizer = ConversationSummarizer(
            llm=_llm(cfg),
            store=ChatStore(supabase) if supabase is not None else None,
            model=cfg.summary_model,
        )
        summary = summarizer.summarize(messages, session_id=session_id, user_id=user_id)
    except Exception:
        log.exception("summarize failed sid=%s", session_id)
        summary = default_summary()
    return Response(summary, status=200)


@api_view(["GET"])
@permission_classes([AllowAny])
def memory_context(request):
    """Most recent chat summaries of the caller, newest first."""
    try:
        limit = int(request.GET.get("limit", MEMORY_CONTEXT_DEFAULT_LIMIT))
    except (TypeError, ValueError):
        limit = MEMORY_CONTEXT_DEFAULT_LIMIT
    limit = max(1, min(limit, MEMORY_CONTEXT_MAX_LIMIT))

    supabase = _supabase(_config())
    user_id = get_authenticated_user_id(request, supabase)
    if not user_id:
        return Response({"error": "Authentication required"}, status=401)

    try:
        summaries = ChatStore(supabase).recent_summaries(user_id, limit)
    except PersistenceError:
        return Response({"error": "Failed to fetch memory context"}, status=500)

    if not summaries:
        return Response({"summaries": [], "count": 0, "message": "No previous conversation summaries found"})
    return Response({"summaries": summaries, "count": len(summaries), "limit": limit})


@api_view(["GET"])
@permission_classes([AllowAny])
def models(request):
    cfg = _config()
    if not cfg.has_openrouter:
        return Response({"models": default_models(), "source": "default"})
    try:
        catalog = OpenRouterClient(cfg).list_models()
    except UpstreamError as e:
        log.warning("model catalog unavailable, serving defaults: %s", e)
        return Response({"models": default_models(), "source": "default"})
    return Response({"models": catalog, "source": "openrouter"})


@api_view(["GET"])
@permission_classes([AllowAny])
def status(request):
    return Response({"status": "ok", "config": _config().summary()}, status=200)
