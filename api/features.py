from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.security import check_key, current_user
from db.models import Feature, FeaturePrompt
from db.session import get_db

router = APIRouter(prefix="/features", tags=["features"], dependencies=[Depends(check_key)])
prompts_router = APIRouter(prefix="/feature-prompts", tags=["features"], dependencies=[Depends(check_key)])

# --- Schemas
class PromptOut(BaseModel):
    id: int
    feature_id: int
    title: str
    prompt_content: Optional[str]
    description: Optional[str]
    created_at: datetime
    updated_at: datetime
    class Config:
        from_attributes = True

class FeatureOut(BaseModel):
    id: int
    user_id: str
    title: str
    sort_order: int
    created_at: datetime
    updated_at: datetime
    class Config:
        from_attributes = True

class FeatureDetail(FeatureOut):
    prompts: List[PromptOut] = []

class FeatureIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)

class FeatureReorder(BaseModel):
    ids: List[int]

class PromptIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    prompt_content: Optional[str] = None
    description: Optional[str] = None


def _owned_feature(db: Session, user_id: str, feature_id: int) -> Feature:
    feature = db.query(Feature).filter(Feature.id == feature_id, Feature.user_id == user_id).first()
    if not feature: raise HTTPException(404, "Feature not found")
    return feature

def _owned_prompt(db: Session, user_id: str, prompt_id: int) -> FeaturePrompt:
    prompt = (
        db.query(FeaturePrompt)
        .join(Feature, FeaturePrompt.feature_id == Feature.id)
        .filter(FeaturePrompt.id == prompt_id, Feature.user_id == user_id)
        .first()
    )
    if not prompt: raise HTTPException(404, "Prompt not found")
    return prompt


# --- Features
@router.get("")
def list_features(db: Session = Depends(get_db)):
    counts = dict(
        db.query(FeaturePrompt.feature_id, func.count(FeaturePrompt.id))
        .group_by(FeaturePrompt.feature_id)
        .all()
    )
    rows = db.query(Feature).order_by(Feature.sort_order.asc(), Feature.created_at.desc()).all()
    features = [
        {**FeatureOut.model_validate(f).model_dump(), "prompts_count": counts.get(f.id, 0)}
        for f in rows
    ]
    return {"success": True, "features": features}

@router.post("", status_code=201)
def create_feature(body: FeatureIn, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    # new features go on top
    db.query(Feature).update({Feature.sort_order: Feature.sort_order + 1}, synchronize_session=False)
    feature = Feature(user_id=user_id, title=body.title, sort_order=0)
    db.add(feature); db.commit(); db.refresh(feature)
    return {"success": True, "feature": FeatureOut.model_validate(feature)}

@router.post("/reorder")
def reorder_features(body: FeatureReorder, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    features = {f.id: f for f in db.query(Feature).filter(Feature.id.in_(body.ids), Feature.user_id == user_id)}
    missing = [i for i in body.ids if i not in features]
    if missing: raise HTTPException(404, f"Feature not found: {missing}")
    for index, feature_id in enumerate(body.ids):
        features[feature_id].sort_order = index
    db.commit()
    return {"success": True}

@router.get("/{feature_id}")
def get_feature(feature_id: int, db: Session = Depends(get_db)):
    feature = db.get(Feature, feature_id)
    if not feature: raise HTTPException(404, "Feature not found")
    return {"success": True, "feature": FeatureDetail.model_validate(feature)}

@router.put("/{feature_id}")
def update_feature(feature_id: int, body: FeatureIn, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    feature = _owned_feature(db, user_id, feature_id)
    feature.title = body.title; feature.updated_at = datetime.utcnow()
    db.commit(); db.refresh(feature)
    return {"success": True, "feature": FeatureOut.model_validate(feature)}

@router.delete("/{feature_id}")
def delete_feature(feature_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    feature = _owned_feature(db, user_id, feature_id)
    db.delete(feature); db.commit()
    return {"success": True, "message": "Feature deleted"}

@router.post("/{feature_id}/prompts", status_code=201)
def create_prompt(feature_id: int, body: PromptIn, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    feature = _owned_feature(db, user_id, feature_id)
    prompt = FeaturePrompt(feature_id=feature.id, **body.model_dump())
    db.add(prompt); db.commit(); db.refresh(prompt)
    return {"success": True, "prompt": PromptOut.model_validate(prompt)}


# --- Prompts
@prompts_router.put("/{prompt_id}")
def update_prompt(prompt_id: int, body: PromptIn, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    prompt = _owned_prompt(db, user_id, prompt_id)
    for field, value in body.model_dump().items():
        setattr(prompt, field, value)
    prompt.updated_at = datetime.utcnow()
    db.commit(); db.refresh(prompt)
    return {"success": True, "prompt": PromptOut.model_validate(prompt)}

@prompts_router.delete("/{prompt_id}")
def delete_prompt(prompt_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    prompt = _owned_prompt(db, user_id, prompt_id)
    db.delete(prompt); db.commit()
    return {"success": True, "message": "Prompt deleted"}
