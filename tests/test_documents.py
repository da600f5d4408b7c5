"""Unit tests for document text extraction."""

import io

import pytest
from docx import Document
from openpyxl import Workbook
from pptx import Presentation
from pptx.util import Inches

from deliberate.errors import ExtractionFailure
from deliberate.services.documents import extract_text, is_parseable_type

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _workbook_bytes() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Budget"
    sheet.append(["Line", "Amount"])
    sheet.append(["Rent", 2400])
    sheet.append(["Notes", None])
    staffing = workbook.create_sheet("Staffing")
    staffing.append(["DSP", 12])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _docx_bytes() -> bytes:
    document = Document()
    document.add_paragraph("Board memo")
    document.add_paragraph("Expand the cafe hours.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Cost"
    table.rows[0].cells[1].text = "18000"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _pptx_bytes() -> bytes:
    presentation = Presentation()
    slide = presentation.slides.add_slide(presentation.slide_layouts[6])
    box = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1))
    box.text_frame.text = "Waitlist grew 40%"
    presentation.slides.add_slide(presentation.slide_layouts[6])
    buffer = io.BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


def _pdf_bytes(text: str) -> bytes:
    """Single-page PDF with one line of Helvetica text and a valid xref table."""
    content = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode()
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref,
    )
    return bytes(out)


def test_parseable_types():
    """Modern Office formats, PDF and text have parsers; images do not."""
    for content_type in ("text/plain", PDF, DOCX, PPTX, XLSX):
        assert is_parseable_type(content_type) is True
    assert is_parseable_type("image/png") is False
    assert is_parseable_type("application/msword") is False


def test_plain_text():
    """Text is decoded and trimmed."""
    assert extract_text("  cafe budget \n".encode(), "text/plain") == "cafe budget"


def test_unsupported_type_returns_none():
    """Images yield no text."""
    assert extract_text(b"\x89PNG", "image/png") is None


def test_pdf_text():
    """Page text is extracted."""
    assert "Quarterly staffing plan" in extract_text(_pdf_bytes("Quarterly staffing plan"), PDF)


def test_docx_paragraphs_and_tables():
    """Paragraphs come first, then table rows tab-separated."""
    assert extract_text(_docx_bytes(), DOCX) == "Board memo\nExpand the cafe hours.\nCost\t18000"


def test_pptx_slides_numbered():
    """Each slide is headed by its number; empty slides keep their header."""
    text = extract_text(_pptx_bytes(), PPTX)
    assert text.startswith("--- Slide: 1 ---\nWaitlist grew 40%")
    assert text.endswith("--- Slide: 2 ---")


def test_xlsx_sheets_rendered_as_csv():
    """Each sheet becomes a headed CSV block."""
    text = extract_text(_workbook_bytes(), XLSX)
    assert text.startswith("--- Sheet: Budget ---\nLine,Amount\nRent,2400\nNotes,")
    assert "--- Sheet: Staffing ---\nDSP,12" in text


@pytest.mark.parametrize("content_type", [PDF, DOCX, PPTX, XLSX])
def test_corrupt_documents_raise(content_type):
    """Unreadable documents raise ExtractionFailure."""
    with pytest.raises(ExtractionFailure):
        extract_text(b"not a document", content_type)
