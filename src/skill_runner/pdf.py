# pdf.py
# Renders markdown-ish text into an A4 PDF with reportlab.
#
# Handles the subset models actually produce: #-headings, bullets, numbered
# items, blockquotes, horizontal rules, pipe tables (as plain rows), and
# **bold** / *italic* inline marks. Everything else is a paragraph.

import io
import re
from datetime import date
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer
from reportlab.platypus.flowables import Flowable, HRFlowable

ACCENT = colors.HexColor("#667eea")
MARGIN = 18 * mm

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"\*(.+?)\*")
_RULE = re.compile(r"^[-*_]{3,}$")
_NUMBERED = re.compile(r"^\d+\.\s")
_TABLE_SEPARATOR = re.compile(r"^[|\s:-]+$")


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    body = ParagraphStyle("SkillBody", parent=base["BodyText"], fontSize=10, leading=14)
    return {
        "title": ParagraphStyle(
            "SkillTitle", parent=base["Title"], fontSize=22, leading=26, spaceAfter=6
        ),
        "h1": ParagraphStyle(
            "SkillH1", parent=base["Heading1"], fontSize=18, textColor=colors.HexColor("#1a1a2e")
        ),
        "h2": ParagraphStyle("SkillH2", parent=base["Heading2"], fontSize=16, textColor=ACCENT),
        "h3": ParagraphStyle("SkillH3", parent=base["Heading3"], fontSize=13),
        "h4": ParagraphStyle("SkillH4", parent=base["Heading4"], fontSize=12),
        "body": body,
        "item": ParagraphStyle("SkillItem", parent=body, leftIndent=14),
        "quote": ParagraphStyle(
            "SkillQuote", parent=body, leftIndent=20, fontName="Helvetica-Oblique",
            textColor=colors.HexColor("#555555"),
        ),
        "row": ParagraphStyle("SkillRow", parent=body, fontSize=9, leftIndent=5),
    }


def _inline(text: str) -> str:
    """Escape for reportlab's mini-markup, then map bold and italic marks."""
    text = _BOLD.sub(r"<b>\1</b>", escape(text))
    return _ITALIC.sub(r"<i>\1</i>", text)


def _para(text: str, style: ParagraphStyle, prefix: str = "") -> Paragraph:
    try:
        return Paragraph(prefix + _inline(text), style)
    except ValueError:
        # overlapping marks produce unbalanced tags; drop the formatting
        return Paragraph(prefix + escape(text), style)


def _flowables(content: str, styles: dict[str, ParagraphStyle]) -> list[Flowable]:
    story: list[Flowable] = []
    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed:
            story.append(Spacer(1, 4))
            continue

        if trimmed.startswith("#"):
            level = len(trimmed) - len(trimmed.lstrip("#"))
            if 1 <= level <= 4 and trimmed[level:level + 1] == " ":
                story.append(_para(trimmed[level:].strip(), styles[f"h{level}"]))
                continue

        if _RULE.match(trimmed):
            story.append(HRFlowable(width="100%", thickness=0.5, color=colors.HexColor("#cccccc")))
        elif trimmed.startswith(("- ", "* ")):
            story.append(_para(trimmed[2:].strip(), styles["item"], prefix="• "))
        elif _NUMBERED.match(trimmed):
            story.append(_para(trimmed, styles["item"]))
        elif trimmed.startswith("> "):
            story.append(_para(trimmed[2:].strip(), styles["quote"]))
        elif trimmed.startswith("|") and trimmed.endswith("|"):
            if _TABLE_SEPARATOR.match(trimmed):
                continue
            cells = [c.strip() for c in trimmed.strip("|").split("|") if c.strip()]
            story.append(_para("  |  ".join(cells), styles["row"]))
        else:
            story.append(_para(trimmed, styles["body"]))
    return story


def render_pdf(content: str, title: str | None = None) -> bytes:
    """Render `content` (markdown) to PDF bytes, with an optional title block."""
    styles = _styles()
    story: list[Flowable] = []
    if title:
        story.append(_para(title, styles["title"]))
        story.append(HRFlowable(width="100%", thickness=2, color=ACCENT, spaceAfter=8))
    story.extend(_flowables(content, styles))
    if not story:
        story.append(Spacer(1, 1))

    generated = date.today().isoformat()

    def footer(canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.HexColor("#999999"))
        canvas.drawCentredString(A4[0] / 2, 10 * mm, f"Generated {generated} | Page {doc.page}")
        canvas.restoreState()

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=title or "",
    )
    doc.build(story, onFirstPage=footer, onLaterPages=footer)
    return buffer.getvalue()
