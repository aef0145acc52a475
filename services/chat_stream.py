"""Chat request orchestration.

One ``ChatTurn`` drives one conversation update: the conversation is resolved
(or created), the user message stored, the model streamed, and the assistant
reply stored once the stream ends. ``ChatStream.events`` yields transport-
neutral event dicts; ``services.sse`` turns them into wire frames.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Sequence

from config import ATTACHMENT_LABEL, GENERATION_ERROR_PREFIX
from db.models import Conversation
from db.store import ConversationStore, ModelCatalog, derive_title
from services.errors import ChatError, UpstreamGenerationError
from services.file_extractor import ExtractedFile

logger = logging.getLogger(__name__)

DONE = "[DONE]"


@dataclass
class ChatTurn:
    message: str
    history: List[dict] = field(default_factory=list)
    conversation_id: Optional[int] = None
    system_prompt: Optional[str] = None
    use_grounding: bool = False


def grounding_metadata(grounding: Optional[dict]) -> Optional[dict]:
    if not grounding:
        return None
    meta = {}
    if grounding.get("sources"):
        meta["grounding_sources"] = grounding["sources"]
    if grounding.get("search_queries"):
        meta["search_queries"] = grounding["search_queries"]
    return meta or None


class ChatStream:
    """A prepared request whose reply has not been generated yet.

    ``events()`` is single-use: it opens the upstream stream, relays every
    event in order and ends with either ``DONE`` or an ``{"error": ...}`` event.
    If the consumer closes it early, the upstream stream is closed and the text
    received so far is stored.
    """

    def __init__(self, store: ConversationStore, conversation: Conversation, open_upstream: Callable[[], Iterator[dict]]):
        self.store = store
        self.conversation_id = conversation.id
        self.ai_model_id = conversation.ai_model_id
        self._open_upstream = open_upstream
        self._consumed = False

    def events(self) -> Iterator[object]:
        if self._consumed:
            raise RuntimeError("ChatStream.events() can only be consumed once")
        self._consumed = True

        yield {"conversation_id": self.conversation_id}

        parts: List[str] = []
        grounding: Optional[dict] = None
        upstream_error: Optional[str] = None
        saved = False
        upstream = None
        try:
            upstream = self._open_upstream()
            for event in upstream:
                if event.get("text"):
                    parts.append(event["text"])
                    yield {"content": event["text"]}
                elif event.get("grounding"):
                    grounding = event["grounding"]
                    yield {"grounding": grounding}
                elif isinstance(event.get("error"), UpstreamGenerationError):
                    upstream_error = str(event["error"])
                    text = GENERATION_ERROR_PREFIX + upstream_error
                    parts.append(text)
                    yield {"content": text}

            saved = True
            self._save_reply("".join(parts), grounding, upstream_error)
            yield DONE
        except GeneratorExit:
            if not saved and parts:
                logger.info("Client disconnected from conversation %s; keeping partial reply", self.conversation_id)
                try:
                    self._save_reply("".join(parts), grounding, upstream_error)
                except ChatError as e:
                    logger.error("Could not store partial reply for conversation %s: %s", self.conversation_id, e)
            raise
        except Exception as e:
            logger.exception("Chat stream failed for conversation %s", self.conversation_id)
            yield {"error": str(e)}
        finally:
            close = getattr(upstream, "close", None)
            if close is not None:
                close()

    def _save_reply(self, content: str, grounding: Optional[dict], upstream_error: Optional[str]) -> None:
        metadata = grounding_metadata(grounding)
        if upstream_error:
            metadata = dict(metadata or {}, generation_error=upstream_error)
        self.store.append_message(
            self.conversation_id, "assistant", content, metadata=metadata, ai_model_id=self.ai_model_id,
        )
        self.store.touch(self.conversation_id, datetime.utcnow())


class ChatStreamOrchestrator:
    def __init__(self, store: ConversationStore, catalog: ModelCatalog, generator):
        self.store = store
        self.catalog = catalog
        self.generator = generator

    def resolve_conversation(self, user_id: str, conversation_id: Optional[int], message: str) -> Conversation:
        if conversation_id:
            return self.store.find_for_user(user_id, conversation_id)
        return self.store.create(
            user_id,
            self.catalog.default_model(),
            derive_title(message),
            datetime.utcnow(),
        )

    def start(
        self,
        user_id: str,
        turn: ChatTurn,
        files: Sequence[ExtractedFile] = (),
    ) -> ChatStream:
        """Resolve the conversation and store the user message; streaming starts when events are pulled.

        ``files`` holds only successfully extracted uploads; their names go into
        the stored message as an attachment list.
        """
        conversation = self.resolve_conversation(user_id, turn.conversation_id, turn.message)

        content = turn.message
        if files:
            content += "\n\n" + ATTACHMENT_LABEL + ", ".join(f.filename for f in files)
        self.store.append_message(conversation.id, "user", content, ai_model_id=conversation.ai_model_id)

        if files:
            def open_upstream():
                return self.generator.stream_with_files(
                    turn.message, list(files), turn.history, turn.system_prompt, turn.use_grounding,
                )
        else:
            def open_upstream():
                return self.generator.stream(
                    turn.message, turn.history, turn.system_prompt, turn.use_grounding,
                )

        return ChatStream(self.store, conversation, open_upstream)

    def complete(self, user_id: str, turn: ChatTurn) -> dict:
        """Non-streaming turn. Raises UpstreamGenerationError if the model call failed."""
        conversation = self.resolve_conversation(user_id, turn.conversation_id, turn.message)
        self.store.append_message(conversation.id, "user", turn.message, ai_model_id=conversation.ai_model_id)

        result = self.generator.generate(turn.message, turn.history)
        if not result.success:
            raise UpstreamGenerationError(result.error or "Unknown error occurred")

        self.store.append_message(conversation.id, "assistant", result.text, ai_model_id=conversation.ai_model_id)
        self.store.touch(conversation.id, datetime.utcnow())
        return {"success": True, "message": result.text, "conversation_id": conversation.id}
