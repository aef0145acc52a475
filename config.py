"""Central configuration, overridable through environment variables."""

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent

# -------- Storage --------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./chat.db")
CONFIG_PATH = Path(os.getenv("CONFIG_PATH", str(PROJECT_ROOT / "config.yaml")))

# -------- HTTP --------
API_KEY = os.getenv("CHAT_API_KEY", "")

# CORS origins (dev Vite)
ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
extra = os.getenv("FRONTEND_ORIGINS")
if extra:
    ALLOWED_ORIGINS += [o.strip() for o in extra.split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# -------- Gemini --------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_TIMEOUT_MS = int(os.getenv("GEMINI_TIMEOUT_MS", "120000"))

# -------- Request limits --------
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "10000"))
MAX_SYSTEM_PROMPT_LENGTH = int(os.getenv("MAX_SYSTEM_PROMPT_LENGTH", "10000"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# -------- Conversations --------
TITLE_MAX_CHARS = 50
DEFAULT_MODEL_ID = 1
CONVERSATION_LIST_LIMIT = 50

# -------- User-visible strings --------
SYSTEM_PROMPT_PREAMBLE = "Please follow the instructions below when answering:\n\n"
SYSTEM_PROMPT_ACK = "Understood. I will follow those instructions in my answers."
GENERATION_ERROR_PREFIX = "An error occurred: "
ATTACHMENT_LABEL = "📎 Attached files: "

# LibreOffice binary used to convert legacy .doc files
LIBREOFFICE_PATH = os.getenv("LIBREOFFICE_PATH")
