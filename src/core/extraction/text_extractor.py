"""Plain-text extraction from stored documents (PDF via pypdfium2, text files)."""

import asyncio
import logging

import pypdfium2 as pdfium

from src.core.exceptions import DocumentUnreadableError

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = {"application/pdf", "application/x-pdf"}
TEXT_MIME_TYPES = {"text/plain", "text/csv"}


def _pdf_text(data: bytes) -> str:
    try:
        pdf = pdfium.PdfDocument(data)
    except pdfium.PdfiumError as e:
        raise DocumentUnreadableError(f"Cannot open PDF: {e}") from e

    pages: list[str] = []
    try:
        for page in pdf:
            textpage = page.get_textpage()
            try:
                pages.append(textpage.get_text_range())
            finally:
                textpage.close()
                page.close()
    finally:
        pdf.close()
    return "\n\n".join(pages)


def _decode_text(data: bytes) -> str:
    for encoding in ("utf-8", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise DocumentUnreadableError("Text document is not valid UTF-8 or CP1252")


def _is_pdf(data: bytes, mime_type: str | None, file_name: str | None) -> bool:
    if mime_type in PDF_MIME_TYPES:
        return True
    if data[:5] == b"%PDF-":
        return True
    return bool(file_name and file_name.lower().endswith(".pdf"))


async def extract_text(
    data: bytes, mime_type: str | None = None, file_name: str | None = None
) -> str:
    """Return the document's text. Raises DocumentUnreadableError if none."""
    if not data:
        raise DocumentUnreadableError("Document is empty")

    if _is_pdf(data, mime_type, file_name):
        text = await asyncio.to_thread(_pdf_text, data)
    elif mime_type in TEXT_MIME_TYPES or (file_name and file_name.lower().endswith(".txt")):
        text = _decode_text(data)
    else:
        raise DocumentUnreadableError(f"Unsupported document type: {mime_type or file_name}")

    text = text.strip()
    if not text:
        raise DocumentUnreadableError("No text could be extracted from the document")
    logger.debug("Extracted %d chars from %s", len(text), file_name or "document")
    return text
