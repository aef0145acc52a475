import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from loaders.doc_loader import load_doc
from loaders.docx_loader import load_docx
from loaders.excel_loader import load_excel
from loaders.image_loader import load_image
from loaders.pdf_loader import load_pdf
from loaders.pptx_loader import load_pptx
from services.errors import FileExtractionError

logger = logging.getLogger(__name__)

# extension -> text loader; keys are lowercase without the dot
TEXT_LOADERS: Dict[str, Callable[[Path], str]] = {
    "pdf": load_pdf,
    "docx": load_docx,
    "doc": load_doc,
    "xlsx": load_excel,
    "xls": load_excel,
    "pptx": load_pptx,
    "ppt": load_pptx,
}
IMAGE_TYPES = frozenset({"jpg", "jpeg", "png", "gif", "webp"})
SUPPORTED_TYPES = frozenset(TEXT_LOADERS) | IMAGE_TYPES


@dataclass(frozen=True)
class ExtractedFile:
    type: str                         # "text" | "image"
    content: str                      # plain text, or base64 for images
    filename: str
    mime_type: Optional[str] = None


def _extension(filename: str) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


class FileExtractor:
    def is_supported(self, filename: str) -> bool:
        return _extension(filename) in SUPPORTED_TYPES

    def is_image(self, filename: str) -> bool:
        return _extension(filename) in IMAGE_TYPES

    def extract(self, path: Path, filename: str) -> ExtractedFile:
        """Turn one stored upload into text or an inline image.

        ``filename`` is the client-side name; it decides the file category,
        since ``path`` is usually a temporary file.
        Raises FileExtractionError when the file cannot be read or parsed.
        """
        ext = _extension(filename)
        if ext in IMAGE_TYPES:
            try:
                data, mime = load_image(path, filename)
            except OSError as e:
                raise FileExtractionError(filename, str(e)) from e
            return ExtractedFile(type="image", content=data, filename=filename, mime_type=mime)

        loader = TEXT_LOADERS.get(ext)
        if loader is None:
            raise FileExtractionError(filename, f"unsupported file type: {ext or 'none'}")
        try:
            text = loader(path)
        except Exception as e:
            logger.error("%s extraction error for %s: %s", ext.upper(), filename, e)
            raise FileExtractionError(filename, str(e)) from e
        return ExtractedFile(type="text", content=text, filename=filename)
