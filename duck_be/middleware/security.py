"""
Request size limiting for the JSON API.
"""
import logging

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class RequestSizeLimitMiddleware:
    """
    Rejects write requests whose declared Content-Length exceeds
    settings.DUCK_MAX_REQUEST_BYTES (413). Conversation histories are sent
    in full on every title/summary call, so the limit is generous.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.max_size = int(getattr(settings, "DUCK_MAX_REQUEST_BYTES", DEFAULT_MAX_BYTES))

    def __call__(self, request):
        if request.method in ("POST", "PUT", "PATCH"):
            try:
                content_length = int(request.META.get("CONTENT_LENGTH") or 0)
            except (ValueError, TypeError):
                content_length = 0

            if content_length > self.max_size:
                logger.warning(
                    "request too large: %s bytes from %s", content_length, request.META.get("REMOTE_ADDR")
                )
                return JsonResponse({
                    "error": "Request too large",
                    "max_size_mb": round(self.max_size / (1024 * 1024), 2),
                    "your_size_mb": round(content_length / (1024 * 1024), 2),
                }, status=413)

        return self.get_response(request)
