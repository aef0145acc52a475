import re
import zipfile
from pathlib import Path

MAX_SLIDES = 100
TAG_RE = re.compile(r"<[^>]+>")
WS_RE = re.compile(r"\s+")

def load_pptx(path: Path) -> str:
    """Read slide XML straight from the package; stops at the first missing slide."""
    chunks = []
    with zipfile.ZipFile(path) as zf:
        names = set(zf.namelist())
        for i in range(1, MAX_SLIDES + 1):
            name = f"ppt/slides/slide{i}.xml"
            if name not in names:
                break
            xml = zf.read(name).decode("utf-8", errors="replace")
            text = WS_RE.sub(" ", TAG_RE.sub("", xml)).strip()
            chunks.append(f"[Slide {i}]\n{text}")
    return "\n\n".join(chunks).strip()
