import base64
from pathlib import Path

IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

def load_image(path: Path, filename: str) -> tuple:
    """Return (base64 payload, mime type). The image itself is never decoded."""
    mime = IMAGE_MIME_TYPES.get(Path(filename).suffix.lower(), "image/jpeg")
    return base64.b64encode(path.read_bytes()).decode("ascii"), mime
