import logging
import shutil
import subprocess
import tempfile
from pathlib import Path

from config import LIBREOFFICE_PATH
from loaders.docx_loader import load_docx

logger = logging.getLogger(__name__)

CONVERT_TIMEOUT_S = 120

def _soffice() -> str:
    # configured binary if it exists, otherwise whatever is on PATH
    if LIBREOFFICE_PATH and Path(LIBREOFFICE_PATH).exists():
        return LIBREOFFICE_PATH
    return "soffice"

def to_docx(src: Path, out_dir: Path) -> Path:
    """Headless LibreOffice conversion of a legacy Word file; raises RuntimeError on failure."""
    cmd = [_soffice(), "--headless", "--convert-to", "docx", "--outdir", str(out_dir), str(src)]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=CONVERT_TIMEOUT_S)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RuntimeError(f"LibreOffice could not convert {src.name}: {e}") from e

    converted = out_dir / f"{src.stem}.docx"
    if proc.returncode != 0 or not converted.exists():
        logger.debug("soffice exit=%s stderr=%s", proc.returncode, proc.stderr)
        raise RuntimeError(f"LibreOffice conversion failed (exit {proc.returncode})")
    return converted

def load_doc(path: Path) -> str:
    out_dir = Path(tempfile.mkdtemp(prefix="doc2docx_"))
    try:
        return load_docx(to_docx(path, out_dir))
    finally:
        shutil.rmtree(out_dir, ignore_errors=True)
