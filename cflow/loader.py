"""Text extraction — turns an uploaded file into the run's source text."""

import logging
from pathlib import Path

import docx
from pypdf import PdfReader

from cflow.errors import DocumentLoadError, DocumentNotFoundError, UnsupportedFormatError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".md", ".pdf", ".docx"}


def _read_pdf(path: Path) -> str:
    reader = PdfReader(str(path))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _read_docx(path: Path) -> str:
    document = docx.Document(str(path))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def load_text(file_ref: str | Path) -> str:
    """Extract the text of a .txt, .md, .pdf or .docx file.

    Raises DocumentNotFoundError if the file does not exist,
    UnsupportedFormatError for any other extension and DocumentLoadError if
    the file exists but cannot be read.
    """
    path = Path(file_ref)
    ext = path.suffix.lower()

    if not path.is_file():
        raise DocumentNotFoundError(f"File not found: {path}")
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"Unsupported file format: {ext or '(none)'}")

    try:
        if ext == ".pdf":
            text = _read_pdf(path)
        elif ext == ".docx":
            text = _read_docx(path)
        else:
            text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        raise DocumentLoadError(f"Failed to load {ext[1:].upper()} file {path.name}: {exc}") from exc

    logger.info("Loaded %s (%d characters)", path.name, len(text))
    return text
