import logging
import sys

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.ai_models import router as ai_models_router
from api.chat import router as chat_router
from api.conversations import router as conversations_router
from api.features import prompts_router, router as features_router
from api.security import check_key
from config import ALLOWED_ORIGINS, LOG_LEVEL
from db.init_db import init_db
from services.errors import (
    ChatError, NotFoundError, PersistenceError, UpstreamGenerationError, ValidationError,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# -------- App --------
app = FastAPI(title="Gemini Chat API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
def _startup():
    init_db()

app.include_router(chat_router)
app.include_router(conversations_router)
app.include_router(ai_models_router)
app.include_router(features_router)
app.include_router(prompts_router)

# -------- Error mapping --------
ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    UpstreamGenerationError: 500,
    PersistenceError: 500,
}

@app.exception_handler(ChatError)
async def _chat_error(request: Request, exc: ChatError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse({"success": False, "error": str(exc)}, status_code=status)

# -------- Routes --------
@app.get("/health", dependencies=[Depends(check_key)])
def health():
    return {"ok": True}
