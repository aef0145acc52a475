from typing import Optional
from fastapi import Header, HTTPException

from config import API_KEY

def check_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Raise 401 if header doesn't match."""
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")

def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Id of the requesting user; every conversation lookup is scoped to it."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id
