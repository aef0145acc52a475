import json
from typing import Callable, Iterable, Iterator, Optional

from fastapi.responses import StreamingResponse

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event) -> str:
    """One ``data: ...`` frame. Strings (the DONE marker) go out verbatim."""
    if isinstance(event, str):
        return f"data: {event}\n\n"
    return "data: " + json.dumps(event, ensure_ascii=False) + "\n\n"


def stream_body(events: Iterable, on_close: Optional[Callable[[], None]] = None) -> Iterator[str]:
    """Frames for ``events``. When the body is closed, ``events`` is closed first, then ``on_close`` runs."""
    try:
        for event in events:
            yield format_event(event)
    finally:
        try:
            close = getattr(events, "close", None)
            if close is not None:
                close()
        finally:
            if on_close is not None:
                on_close()


def sse_response(events: Iterable, on_close: Optional[Callable[[], None]] = None) -> StreamingResponse:
    """Stream events as text/event-stream; each frame is its own chunk, so it is flushed on its own.

    A client disconnect closes ``events`` (the orchestrator stores any partial
    reply there) before ``on_close`` releases the session.
    """
    return StreamingResponse(stream_body(events, on_close), media_type="text/event-stream", headers=SSE_HEADERS)
