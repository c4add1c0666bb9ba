"""Text extraction for uploaded documents (PDF, DOCX and text-like formats)."""

from __future__ import annotations

import io
from collections.abc import Callable

import fitz  # PyMuPDF
from docx import Document

from voicerag.errors import UnsupportedFormat

TEXT_EXTENSIONS = {"txt", "md", "markdown", "csv", "json", "html", "htm", "xml", "rst", "log"}

# Extensions accepted for upload, without the leading dot
SUPPORTED_EXTENSIONS = ["pdf", "docx", *sorted(TEXT_EXTENSIONS)]

_CONTENT_TYPE_MAP = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
    "text/markdown": "md",
    "text/csv": "csv",
    "text/html": "html",
    "application/json": "json",
}


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def extract_pdf(data: bytes) -> str:
    """Extract page text from a PDF, pages separated by blank lines."""
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text("text", sort=True) for page in doc]
    except Exception as exc:
        raise UnsupportedFormat(f"Could not read PDF: {exc}") from exc
    return "\n\n".join(p.strip() for p in pages if p.strip())


def extract_docx(data: bytes) -> str:
    """Extract paragraph text from a Word document."""
    try:
        document = Document(io.BytesIO(data))
    except Exception as exc:
        raise UnsupportedFormat(f"Could not read DOCX: {exc}") from exc
    return "\n".join(p.text for p in document.paragraphs if p.text.strip())


def extract_plain_text(data: bytes) -> str:
    """Decode UTF-8 text (a leading BOM is tolerated)."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UnsupportedFormat(f"File is not valid UTF-8 text: {exc}") from exc


def extract_text(data: bytes, filename: str, content_type: str | None = None) -> str:
    """Dispatch to the correct extractor based on extension or content type.

    Args:
        data: Raw file bytes.
        filename: Original upload file name.
        content_type: Optional MIME type, used when the name has no extension.

    Returns:
        The extracted text.

    Raises:
        UnsupportedFormat: If the format is unknown, the file is corrupt, or
            no text could be extracted.
    """
    dispatch: dict[str, Callable[[bytes], str]] = {
        "pdf": extract_pdf,
        "docx": extract_docx,
    }
    for ext in TEXT_EXTENSIONS:
        dispatch[ext] = extract_plain_text

    ext = _extension(filename)
    if ext not in dispatch and content_type:
        ext = _CONTENT_TYPE_MAP.get(content_type.split(";")[0].strip().lower(), ext)

    extractor = dispatch.get(ext)
    if extractor is None:
        msg = f"Unsupported file format: {filename!r}. Supported: {sorted(dispatch)}"
        raise UnsupportedFormat(msg)

    text = extractor(data)
    if not text.strip():
        raise UnsupportedFormat(f"No extractable text in {filename!r}")
    return text
