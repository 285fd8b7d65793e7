from __future__ import annotations

import logging
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A5
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.models.profile import Profile
from app.services.errors import RenderError


logger = logging.getLogger(__name__)

PORTAL_TITLE = "AEG PORTAL"
PORTAL_SUBTITLE = "Maharashtra Government Initiative"
BRAND_GREEN = colors.HexColor("#059669")
BRAND_BLUE = colors.HexColor("#2563eb")
TEXT_DARK = colors.HexColor("#1f2937")
TEXT_MUTED = colors.HexColor("#6b7280")


def _format_date(value: date | None) -> str:
    if not value:
        return "N/A"
    return value.strftime("%d/%m/%Y")


def _text(value: object) -> str:
    if value is None or value == "":
        return "N/A"
    return escape(str(value))


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "PassTitle", parent=base["Title"], fontSize=20, textColor=colors.white,
            alignment=TA_CENTER, fontName="Helvetica-Bold", spaceAfter=2,
        ),
        "subtitle": ParagraphStyle(
            "PassSubtitle", parent=base["Normal"], fontSize=10, textColor=colors.white, alignment=TA_CENTER,
        ),
        "heading": ParagraphStyle(
            "PassHeading", parent=base["Heading2"], fontSize=13, textColor=BRAND_GREEN,
            fontName="Helvetica-Bold", spaceBefore=10, spaceAfter=6,
        ),
        "pass_id": ParagraphStyle(
            "PassId", parent=base["Normal"], fontSize=15, textColor=TEXT_DARK, fontName="Helvetica-Bold",
        ),
        "cell": ParagraphStyle("PassCell", parent=base["Normal"], fontSize=9, leading=12, textColor=TEXT_DARK),
        "footer": ParagraphStyle(
            "PassFooter", parent=base["Normal"], fontSize=8, leading=10, textColor=TEXT_MUTED, alignment=TA_CENTER,
        ),
    }


def _details_table(rows: list[tuple[str, str]], style: ParagraphStyle, width: float) -> Table:
    cells = [[Paragraph(f"<b>{label}:</b> {value}", style)] for label, value in rows]
    table = Table(cells, colWidths=[width])
    table.setStyle(
        TableStyle(
            [
                ("LINEBELOW", (0, 0), (-1, -2), 0.25, colors.HexColor("#e5e7eb")),
                ("TOPPADDING", (0, 0), (-1, -1), 3),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ]
        )
    )
    return table


def render_pass(profile: Profile, photo_path: Path | None = None, *, generated_on: datetime | None = None) -> bytes:
    """Render the registration pass of a submitted profile as PDF bytes.

    Any failure is reported as a single ``RenderError``; no partial document
    is returned.
    """

    if not profile.is_submitted or not profile.pass_id:
        raise RenderError()

    generated_on = generated_on or datetime.now()
    buffer = BytesIO()
    try:
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A5,
            leftMargin=1.2 * cm,
            rightMargin=1.2 * cm,
            topMargin=1.2 * cm,
            bottomMargin=1.2 * cm,
            title=f"Registration Pass {profile.pass_id}",
        )
        styles = _styles()
        width = doc.width

        banner = Table(
            [[Paragraph(PORTAL_TITLE, styles["title"])], [Paragraph(PORTAL_SUBTITLE, styles["subtitle"])]],
            colWidths=[width],
        )
        banner.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, -1), BRAND_GREEN),
                    ("LINEBELOW", (0, -1), (-1, -1), 3, BRAND_BLUE),
                    ("TOPPADDING", (0, 0), (-1, -1), 6),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )

        id_block = [Paragraph("Registration Pass", styles["heading"]), Paragraph(f"ID: {profile.pass_id}", styles["pass_id"])]
        if photo_path is not None and photo_path.is_file():
            photo = Image(str(photo_path), width=2.8 * cm, height=2.8 * cm)
            header = Table([[id_block, photo]], colWidths=[width - 3.2 * cm, 3.2 * cm])
            header.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "MIDDLE")]))
        else:
            header = Table([[id_block]], colWidths=[width])

        gender = (profile.gender or "").capitalize() or None
        personal = [
            ("Name", _text(profile.name)),
            ("Gender", _text(gender)),
            ("Age", _text(profile.age)),
            ("DOB", _format_date(profile.date_of_birth)),
            ("Contact", _text(profile.contact)),
            ("Email", _text(profile.email)),
        ]
        additional = [
            ("District", _text(profile.district)),
            ("Category", _text(profile.category)),
            ("Qualification", _text(profile.highest_qualification)),
        ]

        story = [
            banner,
            Spacer(1, 10),
            header,
            Paragraph("Personal Information", styles["heading"]),
            _details_table(personal, styles["cell"], width),
            Paragraph("Additional Details", styles["heading"]),
            _details_table(additional, styles["cell"], width),
            Spacer(1, 16),
            Paragraph(
                f"Generated on {generated_on.strftime('%d/%m/%Y')} - AEG Portal System<br/>"
                "This is an official registration pass issued by Maharashtra Government",
                styles["footer"],
            ),
        ]
        doc.build(story)
    except Exception as exc:  # noqa: BLE001 - reportlab raises many unrelated types; callers only need one
        logger.error("pass_renderer.failed pass_id=%s: %s: %s", profile.pass_id, type(exc).__name__, exc)
        raise RenderError() from exc

    return buffer.getvalue()
