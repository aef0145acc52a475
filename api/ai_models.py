from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.security import check_key
from db.session import get_db
from db.store import ModelCatalog

router = APIRouter(prefix="/ai-models", tags=["ai-models"], dependencies=[Depends(check_key)])

class AiModelOut(BaseModel):
    id: int
    name: str
    provider: str
    model_id: str
    description: Optional[str]
    max_tokens: int
    context_window: int
    supports_vision: bool
    supports_streaming: bool
    class Config:
        from_attributes = True

@router.get("")
def list_models(db: Session = Depends(get_db)):
    models = ModelCatalog(db).active_models()
    return {"success": True, "models": [AiModelOut.model_validate(m) for m in models]}
