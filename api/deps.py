from functools import lru_cache

from db.session import SessionLocal
from services.file_extractor import FileExtractor
from services.gemini_client import GeminiClient


@lru_cache(maxsize=1)
def get_generation_client() -> GeminiClient:
    return GeminiClient()


def get_file_extractor() -> FileExtractor:
    return FileExtractor()


def get_session_factory():
    """Streaming routes open their own session; it must outlive the route function."""
    return SessionLocal
