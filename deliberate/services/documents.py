"""Document text extraction for coaching context."""

import csv
import io
import logging

from docx import Document
from openpyxl import load_workbook
from pptx import Presentation
from pypdf import PdfReader

from deliberate.errors import ExtractionFailure

logger = logging.getLogger(__name__)

_PARSERS = {
    "application/pdf": "pdf",
    "text/plain": "txt",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
}


def is_parseable_type(content_type: str) -> bool:
    return content_type in _PARSERS


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n\n".join(p.strip() for p in pages if p.strip())


def _extract_docx(data: bytes) -> str:
    """Paragraphs, then table rows tab-separated."""
    document = Document(io.BytesIO(data))
    lines = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            lines.append("\t".join(cell.text for cell in row.cells))
    return "\n".join(lines).strip()


def _extract_pptx(data: bytes) -> str:
    presentation = Presentation(io.BytesIO(data))
    slides = []
    for number, slide in enumerate(presentation.slides, start=1):
        texts = [
            shape.text_frame.text
            for shape in slide.shapes
            if shape.has_text_frame and shape.text_frame.text.strip()
        ]
        slides.append(f"--- Slide: {number} ---\n" + "\n".join(texts))
    return "\n\n".join(slides).strip()


def _extract_xlsx(data: bytes) -> str:
    """Render each sheet as a CSV block headed by its name."""
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        sheets = []
        for sheet in workbook.worksheets:
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            for row in sheet.iter_rows(values_only=True):
                writer.writerow(["" if cell is None else cell for cell in row])
            sheets.append(f"--- Sheet: {sheet.title} ---\n{buffer.getvalue()}")
        return "\n\n".join(sheets).strip()
    finally:
        workbook.close()


_EXTRACTORS = {
    "pdf": _extract_pdf,
    "txt": lambda data: data.decode("utf-8", errors="replace").strip(),
    "docx": _extract_docx,
    "pptx": _extract_pptx,
    "xlsx": _extract_xlsx,
}


def extract_text(data: bytes, content_type: str) -> str | None:
    """
    Extract plain text from an uploaded document.

    Returns None for types without a parser (images, legacy binary Office
    formats). Raises ExtractionFailure when a supported document cannot be
    read. Blocking; callers on the event loop run it in a worker thread.
    """
    kind = _PARSERS.get(content_type)
    if kind is None:
        return None
    try:
        return _EXTRACTORS[kind](data)
    except Exception as exc:
        logger.error("Failed to extract %s text: %s", kind, exc)
        raise ExtractionFailure(f"Could not extract text from {kind} document") from exc
