from pathlib import Path
from langchain_community.document_loaders import PyPDFLoader

def load_pdf(path: Path) -> str:
    # One Document per page, returned in page order
    loader = PyPDFLoader(str(path))
    pages = loader.load()
    return "\n".join(d.page_content for d in pages).strip()
