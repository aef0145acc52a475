import base64
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from google import genai
from google.genai import types

from config import GEMINI_API_KEY, GEMINI_MODEL, GEMINI_TIMEOUT_MS
from services.errors import UpstreamGenerationError
from services.file_extractor import ExtractedFile
from services.history import build_history

logger = logging.getLogger(__name__)

# image types the model accepts inline; anything else is sent as JPEG
UPSTREAM_IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}

StreamEvent = Dict[str, object]


@dataclass
class GenerationResult:
    success: bool
    text: str = ""
    error: Optional[str] = None


def extract_grounding(chunk, current: dict) -> dict:
    """Return the grounding snapshot carried by ``chunk``, or ``current`` if it carries none."""
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return current
    metadata = getattr(candidates[0], "grounding_metadata", None)
    if not metadata:
        return current

    result = {}
    sources = []
    for gc in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(gc, "web", None)
        if web:
            sources.append({
                "title": getattr(web, "title", None) or "",
                "uri": getattr(web, "uri", None) or "",
            })
    if sources:
        result["sources"] = sources

    queries = getattr(metadata, "web_search_queries", None)
    if queries:
        result["search_queries"] = list(queries)

    return result or current


def _image_part(f: ExtractedFile) -> types.Part:
    mime = f.mime_type if f.mime_type in UPSTREAM_IMAGE_MIME_TYPES else "image/jpeg"
    return types.Part.from_bytes(data=base64.b64decode(f.content), mime_type=mime)


class GeminiClient:
    """Wraps one Gemini model: one-shot calls plus text and multimodal streams."""

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: str = GEMINI_MODEL,
        api_key: Optional[str] = GEMINI_API_KEY,
        timeout_ms: int = GEMINI_TIMEOUT_MS,
    ):
        if client is None:
            client = genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=timeout_ms))
        self.client = client
        self.model = model

    def _config(self, use_grounding: bool) -> Optional[types.GenerateContentConfig]:
        if not use_grounding:
            return None
        return types.GenerateContentConfig(tools=[types.Tool(google_search=types.GoogleSearch())])

    def _chat(self, history, system_prompt=None, use_grounding=False):
        return self.client.chats.create(
            model=self.model,
            config=self._config(use_grounding),
            history=build_history(history, system_prompt),
        )

    def generate(self, message: str, history: Iterable[Mapping] = ()) -> GenerationResult:
        try:
            response = self._chat(history).send_message(message)
            return GenerationResult(success=True, text=response.text or "")
        except Exception as e:
            logger.exception("Gemini service error")
            return GenerationResult(success=False, error=str(e))

    def stream(
        self,
        message: str,
        history: Iterable[Mapping] = (),
        system_prompt: Optional[str] = None,
        use_grounding: bool = False,
    ) -> Iterator[StreamEvent]:
        def open_stream():
            return self._chat(history, system_prompt, use_grounding).send_message_stream(message)

        return self._relay(open_stream, "Gemini streaming error")

    def stream_with_files(
        self,
        message: str,
        files: Sequence[ExtractedFile] = (),
        history: Iterable[Mapping] = (),
        system_prompt: Optional[str] = None,
        use_grounding: bool = False,
    ) -> Iterator[StreamEvent]:
        text = message
        for f in files:
            if f.type == "text":
                text += f"\n\nfile: {f.filename}\n{f.content}"
        images = [f for f in files if f.type == "image"]

        if images:
            # One multi-part request; chat history is not part of it.
            def open_stream():
                contents: List[object] = [text] + [_image_part(f) for f in images]
                return self.client.models.generate_content_stream(
                    model=self.model,
                    contents=contents,
                    config=self._config(use_grounding),
                )
        else:
            def open_stream():
                return self._chat(history, system_prompt, use_grounding).send_message_stream(text)

        return self._relay(open_stream, "Gemini multimodal streaming error")

    def _relay(self, open_stream: Callable[[], Iterable], label: str) -> Iterator[StreamEvent]:
        """Normalize upstream chunks into text / grounding events.

        Upstream failures end the sequence with a single ``{"error": UpstreamGenerationError}``
        event; nothing is raised to the consumer.
        """
        grounding: dict = {}
        try:
            for chunk in open_stream():
                text = chunk.text
                if text:
                    yield {"text": text}
                grounding = extract_grounding(chunk, grounding)
            if grounding:
                yield {"grounding": grounding}
        except Exception as e:
            logger.exception(label)
            yield {"error": UpstreamGenerationError(str(e))}
