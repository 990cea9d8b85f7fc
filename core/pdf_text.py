# core/pdf_text.py
import textwrap
from typing import List, Tuple
import fitz
from util.errors import TranscodeFailure
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

# A4 in points, 1in margins.
PAGE_WIDTH = 595
PAGE_HEIGHT = 842
MARGIN = 72
FONT_SIZE = 11
LINE_HEIGHT = 14
WRAP_CHARS = 90


def extract_pages_texts(file_bytes: bytes) -> List[Tuple[int, str]]:
    """
    Return [(page_number, page_text)] for the whole PDF.
    Raises TranscodeFailure when PyMuPDF cannot open the bytes.
    """
    out: List[Tuple[int, str]] = []
    try:
        with timed(logger, "pdf.read") as fields:
            with fitz.open(stream=file_bytes, filetype="pdf") as doc:
                fields["pages"] = doc.page_count
                for i in range(doc.page_count):
                    page = doc.load_page(i)
                    out.append((i + 1, (page.get_text("text") or "").strip()))
    except Exception as e:
        # do not log payloads
        logger.error("pdf.parse.error err=%s", type(e).__name__)
        raise TranscodeFailure(f"Could not read PDF: {e}") from e
    return out


def _layout_lines(text: str) -> List[str]:
    lines: List[str] = []
    # split("\n") keeps form feeds; splitlines() would treat them as breaks.
    for raw in text.split("\n"):
        if raw.strip() == "\f":
            lines.append("\f")
            continue
        wrapped = textwrap.wrap(raw, width=WRAP_CHARS, replace_whitespace=False)
        lines.extend(wrapped or [""])
    return lines


def render_text_pdf(text: str) -> bytes:
    """
    Lay plain text out on A4 pages. A line holding only a form feed forces a
    page break so multi-page sources keep their page boundaries.
    """
    per_page = max(1, (PAGE_HEIGHT - 2 * MARGIN) // LINE_HEIGHT)
    pages: List[List[str]] = [[]]
    for line in _layout_lines(text):
        if line == "\f" or len(pages[-1]) >= per_page:
            pages.append([])
            if line == "\f":
                continue
        pages[-1].append(line)

    with timed(logger, "pdf.render", pages=len(pages)):
        doc = fitz.open()
        try:
            for body in pages:
                page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
                if body:
                    page.insert_text(
                        (MARGIN, MARGIN),
                        "\n".join(body),
                        fontsize=FONT_SIZE,
                    )
            return doc.tobytes()
        finally:
            doc.close()
