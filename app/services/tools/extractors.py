"""
Text extraction for uploaded CV files.

Each extractor takes raw bytes and returns plain text. Extraction quality is
owned by the underlying libraries; this module only dispatches on format.
"""

import io
import logging
from typing import Callable, Dict

# Third-Party Imports
import docx
import pypdf

logger = logging.getLogger(__name__)


def extract_pdf_text(content: bytes) -> str:
    """Extract text from all pages of a PDF using pypdf."""
    reader = pypdf.PdfReader(io.BytesIO(content))
    text_parts = [page.extract_text() or "" for page in reader.pages]
    logger.info(f"Extracted text from {len(reader.pages)} PDF pages")
    return "\n".join(text_parts)


def extract_docx_text(content: bytes) -> str:
    """Extract paragraph text from a .docx document using python-docx."""
    document = docx.Document(io.BytesIO(content))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def extract_plain_text(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    '.pdf': extract_pdf_text,
    '.docx': extract_docx_text,
    '.txt': extract_plain_text,
}


def file_text_extractor(extension: str, content: bytes) -> str:
    """
    Extract text from an uploaded file.

    Args:
        extension: Lower-case extension already checked by FileValidator.
        content: Raw file bytes.

    Raises:
        KeyError: If no extractor is registered for the extension.
    """
    return EXTRACTORS[extension](content)
