# lms_exam/services/certificate_renderer.py
"""
Fixed-layout completion certificate (A4 landscape PDF).

The canvas runs in reportlab's invariant mode, so the same content always
renders to the same bytes.
"""
import io
from dataclasses import dataclass
from datetime import date

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

PAGE_SIZE = landscape(A4)
PAGE_W, PAGE_H = PAGE_SIZE

PRIMARY = HexColor("#1e40af")
ACCENT = HexColor("#3b82f6")
TEXT = HexColor("#374151")
MUTED = HexColor("#6b7280")
FAINT = HexColor("#9ca3af")
RULE = HexColor("#d1d5db")


@dataclass(frozen=True)
class CertificateContent:
    serial: str
    learner_name: str
    subject_code: str
    subject_name: str
    final_score: float
    max_score: float
    percentage: float
    grade: str
    completed_on: date
    institution: str


def _fmt_score(value: float) -> str:
    return f"{value:g}"


def _centred(c: canvas.Canvas, y_from_top: float, text: str, font: str, size: float, color) -> None:
    c.setFont(font, size)
    c.setFillColor(color)
    c.drawCentredString(PAGE_W / 2, PAGE_H - y_from_top, text)


def _signature_line(c: canvas.Canvas, x: float, y_from_top: float, width: float, label: str) -> None:
    y = PAGE_H - y_from_top
    c.setStrokeColor(FAINT)
    c.setLineWidth(1)
    c.line(x, y, x + width, y)
    c.setFont("Helvetica", 10)
    c.setFillColor(MUTED)
    c.drawCentredString(x + width / 2, y - 14, label)


def render_certificate_pdf(content: CertificateContent) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=PAGE_SIZE, invariant=1)
    c.setTitle(f"Certificate {content.serial}")
    c.setAuthor(content.institution)

    # border
    c.setStrokeColor(PRIMARY)
    c.setLineWidth(10)
    c.rect(20, 20, PAGE_W - 40, PAGE_H - 40, stroke=1, fill=0)
    c.setStrokeColor(ACCENT)
    c.setLineWidth(2)
    c.rect(30, 30, PAGE_W - 60, PAGE_H - 60, stroke=1, fill=0)

    _centred(c, 110, "CERTIFICATE OF COMPLETION", "Helvetica-Bold", 36, PRIMARY)
    _centred(c, 145, content.institution, "Helvetica", 16, MUTED)

    c.setStrokeColor(RULE)
    c.setLineWidth(1)
    c.line(200, PAGE_H - 170, PAGE_W - 200, PAGE_H - 170)

    _centred(c, 215, "This is to certify that", "Helvetica", 14, TEXT)
    _centred(c, 260, content.learner_name, "Helvetica-Bold", 30, PRIMARY)
    _centred(c, 295, "has successfully completed the course", "Helvetica", 14, TEXT)
    _centred(
        c, 335, f"{content.subject_code} - {content.subject_name}", "Helvetica-Bold", 22, PRIMARY
    )
    _centred(
        c,
        375,
        f"with a final score of {_fmt_score(content.final_score)}/{_fmt_score(content.max_score)} "
        f"({content.percentage:.2f}%), grade {content.grade}",
        "Helvetica",
        14,
        TEXT,
    )
    _centred(
        c,
        420,
        f"Date of Completion: {content.completed_on.strftime('%B %d, %Y')}",
        "Helvetica",
        12,
        MUTED,
    )
    _centred(c, 440, f"Certificate No: {content.serial}", "Helvetica", 10, FAINT)

    sig_width = 200
    _signature_line(c, 150, 500, sig_width, "Instructor Signature")
    _signature_line(c, PAGE_W - 150 - sig_width, 500, sig_width, "Head of Department")

    c.showPage()
    c.save()
    return buf.getvalue()
