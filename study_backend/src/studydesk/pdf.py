from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Union

from pypdf import PdfReader

from .errors import PdfExtractionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PdfText:
    """Text pulled out of a PDF: the marked-up text and the number of pages read."""
    text: str
    pages: int


def _page_text(raw: str) -> str:
    # Text runs are joined with single spaces; layout line breaks are not kept
    return " ".join(raw.split())


# PUBLIC_INTERFACE
def read_pdf(source: Union[bytes, BinaryIO]) -> PdfText:
    """
    Decode a PDF and return its text page by page.

    Each page is prefixed with a literal "[Page N]" line, pages are separated by a
    blank line and the whole result is trimmed. Raises PdfExtractionError when the
    input cannot be parsed.
    """
    stream = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        reader = PdfReader(stream)
        parts = [
            f"[Page {number}]\n{_page_text(page.extract_text() or '')}"
            for number, page in enumerate(reader.pages, start=1)
        ]
    except Exception as exc:
        logger.info("PDF extraction failed: %s", exc)
        raise PdfExtractionError(str(exc)) from exc
    return PdfText(text="\n\n".join(parts).strip(), pages=len(parts))


# PUBLIC_INTERFACE
def extract_pdf_text(source: Union[bytes, BinaryIO]) -> str:
    """Return the concatenated, page-marked text of a PDF (see read_pdf)."""
    return read_pdf(source).text
