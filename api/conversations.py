from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.security import check_key, current_user
from config import CONVERSATION_LIST_LIMIT
from db.models import Conversation, Message
from db.session import get_db
from db.store import ModelCatalog

router = APIRouter(prefix="/conversations", tags=["conversations"], dependencies=[Depends(check_key)])

# --- Schemas
class ConversationOut(BaseModel):
    id: int
    title: Optional[str]
    ai_model_id: Optional[int]
    system_prompt: Optional[str]
    is_archived: bool
    is_favorite: bool
    last_message_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    class Config:
        from_attributes = True

class MessageOut(BaseModel):
    id: int
    role: str
    content: str
    metadata: Optional[dict] = Field(None, validation_alias="meta")
    input_tokens: Optional[int]
    output_tokens: Optional[int]
    created_at: datetime
    class Config:
        from_attributes = True

class ConversationDetail(ConversationOut):
    messages: List[MessageOut] = []

class ConversationCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    ai_model_id: Optional[int] = None
    system_prompt: Optional[str] = None

class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    system_prompt: Optional[str] = None
    is_archived: Optional[bool] = None
    is_favorite: Optional[bool] = None


def _get_owned(db: Session, user_id: str, conversation_id: int) -> Conversation:
    conv = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
        .first()
    )
    if not conv: raise HTTPException(404, "Conversation not found")
    return conv


@router.get("")
def list_conversations(
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
    q: Optional[str] = Query(None),
    archived: Optional[bool] = Query(False),
    limit: int = Query(CONVERSATION_LIST_LIMIT, ge=1, le=200),
):
    qry = db.query(Conversation).filter(
        Conversation.user_id == user_id,
        Conversation.is_archived == (archived or False),
    )
    if q:
        qry = qry.filter(Conversation.title.ilike(f"%{q}%"))
    rows = qry.order_by(Conversation.last_message_at.desc(), Conversation.id.desc()).limit(limit).all()
    return {"success": True, "conversations": [ConversationOut.model_validate(c) for c in rows]}

@router.post("", status_code=201)
def create_conversation(body: ConversationCreate, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    now = datetime.utcnow()
    conv = Conversation(
        user_id=user_id,
        ai_model_id=body.ai_model_id or ModelCatalog(db).default_model(),
        title=body.title,
        system_prompt=body.system_prompt,
        last_message_at=now, created_at=now, updated_at=now,
    )
    db.add(conv); db.commit(); db.refresh(conv)
    return {"success": True, "conversation": ConversationOut.model_validate(conv)}

@router.get("/{conversation_id}")
def get_conversation(conversation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    conv = _get_owned(db, user_id, conversation_id)
    return {"success": True, "conversation": ConversationDetail.model_validate(conv)}

@router.patch("/{conversation_id}")
def update_conversation(
    conversation_id: int,
    body: ConversationUpdate,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    conv = _get_owned(db, user_id, conversation_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(conv, field, value)
    conv.updated_at = datetime.utcnow()
    db.commit(); db.refresh(conv)
    return {"success": True, "conversation": ConversationOut.model_validate(conv)}

@router.delete("/{conversation_id}")
def delete_conversation(conversation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    conv = _get_owned(db, user_id, conversation_id)
    db.delete(conv); db.commit()
    return {"success": True, "message": "Conversation deleted"}

@router.post("/{conversation_id}/archive")
def archive_conversation(conversation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    conv = _get_owned(db, user_id, conversation_id)
    conv.is_archived = True; conv.updated_at = datetime.utcnow()
    db.commit()
    return {"success": True}

@router.get("/{conversation_id}/messages")
def list_messages(conversation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    _get_owned(db, user_id, conversation_id)
    msgs = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return {"success": True, "messages": [MessageOut.model_validate(m) for m in msgs]}
