import json
import logging
from typing import Callable, Iterable, Iterator, Optional

from django.http import StreamingHttpResponse

log = logging.getLogger(__name__)

DONE_FRAME = b"data: [DONE]\n\n"


def sse_frame(payload) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


def reframe(
    chunks: Iterable[str],
    transform: Optional[Callable[[str], str]] = None,
) -> Iterator[bytes]:
    """
    Re-emit text chunks as SSE frames.

    One content frame per chunk, then a single [DONE] frame. If the source
    raises, a single error frame is emitted instead of [DONE]. Closing this
    generator closes the source, so a disconnecting client aborts the
    upstream request.
    """
    source = iter(chunks)
    try:
        for chunk in source:
            if transform is not None:
                chunk = transform(chunk)
            yield sse_frame({"content": chunk})
    except Exception as e:
        log.warning("stream_error err=%s", e)
        yield sse_frame({"error": str(e) or "Unknown error"})
        return
    finally:
        close = getattr(source, "close", None)
        if close is not None:
            close()
    yield DONE_FRAME


def event_stream_response(chunks: Iterable[str], transform=None) -> StreamingHttpResponse:
    resp = StreamingHttpResponse(reframe(chunks, transform), content_type="text/event-stream")
    resp["Cache-Control"] = "no-cache"
    resp["X-Accel-Buffering"] = "no"
    return resp
