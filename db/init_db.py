import logging
from pathlib import Path
from typing import List

import yaml
from sqlalchemy.orm import Session

from config import CONFIG_PATH
from db.models import AiModel, Base
from db.session import SessionLocal, engine

logger = logging.getLogger(__name__)

MODEL_FIELDS = (
    "name", "provider", "model_id", "description", "max_tokens", "context_window",
    "is_active", "supports_vision", "supports_streaming", "sort_order",
)

def load_model_catalog(path: Path = CONFIG_PATH) -> List[dict]:
    if not path.exists():
        return []
    cfg = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return [
        {k: v for k, v in entry.items() if k in MODEL_FIELDS}
        for entry in cfg.get("models") or []
    ]

def seed_models(db: Session, entries: List[dict]) -> int:
    """Insert catalog rows that are not present yet; returns how many were added."""
    added = 0
    for entry in entries:
        exists = (
            db.query(AiModel)
            .filter(AiModel.provider == entry["provider"], AiModel.model_id == entry["model_id"])
            .first()
        )
        if exists:
            continue
        db.add(AiModel(**entry))
        added += 1
    db.commit()
    return added

def init_db(bind=None, config_path: Path = CONFIG_PATH) -> None:
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    db = SessionLocal(bind=bind)
    try:
        added = seed_models(db, load_model_catalog(config_path))
        if added:
            logger.info("Seeded %d AI model(s) from %s", added, config_path)
    finally:
        db.close()
