import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from api.deps import get_file_extractor, get_generation_client, get_session_factory
from api.security import check_key, current_user
from config import MAX_MESSAGE_LENGTH, MAX_SYSTEM_PROMPT_LENGTH, MAX_UPLOAD_BYTES
from db.session import get_db
from db.store import ConversationStore, ModelCatalog
from services.chat_stream import ChatStreamOrchestrator, ChatTurn
from services.errors import FileExtractionError, UpstreamGenerationError
from services.file_extractor import ExtractedFile, FileExtractor
from services.sse import sse_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(check_key)])

TRUTHY = {"1", "true", "on", "yes"}

# --- Schemas
class HistoryItem(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    conversation_id: Optional[int] = None
    history: List[HistoryItem] = Field(default_factory=list)
    system_prompt: Optional[str] = Field(None, max_length=MAX_SYSTEM_PROMPT_LENGTH)
    use_grounding: bool = False

    def to_turn(self) -> ChatTurn:
        return ChatTurn(
            message=self.message,
            history=[h.model_dump() for h in self.history],
            conversation_id=self.conversation_id,
            system_prompt=self.system_prompt or None,
            use_grounding=self.use_grounding,
        )


def _orchestrator(db: Session, generator) -> ChatStreamOrchestrator:
    return ChatStreamOrchestrator(ConversationStore(db), ModelCatalog(db), generator)


def _stream(session_factory, generator, user_id: str, turn: ChatTurn, files=()):
    db = session_factory()
    try:
        stream = _orchestrator(db, generator).start(user_id, turn, files)
    except Exception:
        db.close()
        raise
    return sse_response(stream.events(), on_close=db.close)


# --- Routes
@router.post("")
def chat(
    body: ChatRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
    generator=Depends(get_generation_client),
):
    try:
        return _orchestrator(db, generator).complete(user_id, body.to_turn())
    except UpstreamGenerationError as e:
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)


@router.post("/stream")
def stream_chat(
    body: ChatRequest,
    user_id: str = Depends(current_user),
    generator=Depends(get_generation_client),
    session_factory=Depends(get_session_factory),
):
    return _stream(session_factory, generator, user_id, body.to_turn())


@router.post("/stream-with-files")
def stream_chat_with_files(
    message: str = Form(...),
    conversation_id: Optional[str] = Form(None),
    history: Optional[str] = Form(None),
    system_prompt: Optional[str] = Form(None),
    use_grounding: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    user_id: str = Depends(current_user),
    generator=Depends(get_generation_client),
    extractor: FileExtractor = Depends(get_file_extractor),
    session_factory=Depends(get_session_factory),
):
    body = _form_request(message, conversation_id, history, system_prompt, use_grounding)
    uploads = _read_uploads(files or [])
    extracted = extract_uploads(uploads, extractor)
    return _stream(session_factory, generator, user_id, body.to_turn(), extracted)


# --- Multipart helpers
def _form_request(message, conversation_id, history, system_prompt, use_grounding) -> ChatRequest:
    try:
        history_items = json.loads(history) if history else []
    except json.JSONDecodeError:
        raise RequestValidationError([{
            "loc": ("body", "history"), "msg": "history must be a JSON array", "type": "value_error",
        }])
    try:
        return ChatRequest(
            message=message,
            conversation_id=int(conversation_id) if conversation_id else None,
            history=history_items or [],
            system_prompt=system_prompt,
            use_grounding=(use_grounding or "").strip().lower() in TRUTHY,
        )
    except ValueError as e:
        # int() failures and pydantic errors both land here
        errors = e.errors() if isinstance(e, PydanticValidationError) else [{
            "loc": ("body", "conversation_id"), "msg": str(e), "type": "value_error",
        }]
        raise RequestValidationError(errors)


def _read_uploads(files: List[UploadFile]) -> List[tuple]:
    """(filename, bytes) per upload; any file over the size cap rejects the whole request."""
    uploads = []
    for f in files:
        data = f.file.read(MAX_UPLOAD_BYTES + 1)
        if len(data) > MAX_UPLOAD_BYTES:
            raise HTTPException(413, f"{f.filename} exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")
        uploads.append((f.filename or "", data))
    return uploads


def extract_uploads(uploads: List[tuple], extractor: FileExtractor) -> List[ExtractedFile]:
    """Extract supported uploads; unsupported or broken files are skipped."""
    extracted: List[ExtractedFile] = []
    tmpdir = Path(tempfile.mkdtemp(prefix="chat_upload_"))
    try:
        for i, (name, data) in enumerate(uploads):
            if not extractor.is_supported(name):
                logger.info("Skipping unsupported upload %r", name)
                continue
            path = tmpdir / f"{i}{Path(name).suffix.lower()}"
            path.write_bytes(data)
            try:
                extracted.append(extractor.extract(path, name))
            except FileExtractionError as e:
                logger.warning("File extraction failed for %s: %s", e.filename, e.reason)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)
    return extracted
