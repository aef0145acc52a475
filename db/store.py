import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import DEFAULT_MODEL_ID, TITLE_MAX_CHARS
from db.models import AiModel, Conversation, Message
from services.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


def derive_title(message: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    title = message[:max_chars]
    if len(message) > max_chars:
        title += "..."
    return title


class ModelCatalog:
    def __init__(self, db: Session):
        self.db = db

    def active_models(self):
        return (
            self.db.query(AiModel)
            .filter(AiModel.is_active.is_(True))
            .order_by(AiModel.sort_order.asc(), AiModel.id.asc())
            .all()
        )

    def default_model(self) -> int:
        """Id of the first active model by sort order, or DEFAULT_MODEL_ID if there is none."""
        row = (
            self.db.query(AiModel.id)
            .filter(AiModel.is_active.is_(True))
            .order_by(AiModel.sort_order.asc(), AiModel.id.asc())
            .first()
        )
        return row[0] if row else DEFAULT_MODEL_ID


class ConversationStore:
    """Conversation and message persistence, always scoped to the owning user."""

    def __init__(self, db: Session):
        self.db = db

    def find_for_user(self, user_id: str, conversation_id: int) -> Conversation:
        conv = (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
            .first()
        )
        if conv is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conv

    def create(
        self,
        user_id: str,
        model_id: Optional[int],
        title: Optional[str],
        last_message_at: Optional[datetime] = None,
        system_prompt: Optional[str] = None,
    ) -> Conversation:
        now = datetime.utcnow()
        conv = Conversation(
            user_id=user_id,
            ai_model_id=model_id,
            title=title,
            system_prompt=system_prompt,
            last_message_at=last_message_at or now,
            created_at=now,
            updated_at=now,
        )
        return self._commit(conv)

    def append_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        metadata: Optional[dict] = None,
        ai_model_id: Optional[int] = None,
    ) -> Message:
        msg = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            meta=metadata,
            ai_model_id=ai_model_id,
        )
        return self._commit(msg)

    def touch(self, conversation_id: int, timestamp: Optional[datetime] = None) -> None:
        ts = timestamp or datetime.utcnow()
        try:
            self.db.query(Conversation).filter(Conversation.id == conversation_id).update(
                {Conversation.last_message_at: ts, Conversation.updated_at: ts},
                synchronize_session="fetch",
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to touch conversation %s: %s", conversation_id, e)
            raise PersistenceError(f"Could not update conversation: {e}") from e

    def _commit(self, obj):
        try:
            self.db.add(obj)
            self.db.commit()
            self.db.refresh(obj)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save %s: %s", type(obj).__name__, e)
            raise PersistenceError(f"Could not save {type(obj).__name__.lower()}: {e}") from e
        return obj
