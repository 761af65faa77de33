from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from typing import Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from survey_analytics.config import ExportsConfig
from survey_analytics.features.aggregates import AggregateMetrics, location_key
from survey_analytics.features.filters import FilterCriteria
from survey_analytics.io.schema import ResponseRecord

PAGE_SIZES = {"A4": A4, "letter": letter}
RECORD_COLUMNS = ["Date", "Survey", "Score", "Percentage", "Location"]
MAX_CELL_CHARS = 38

_KEY_VALUE_STYLE = TableStyle(
    [
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTNAME", (1, 0), (1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
)

_GRID_STYLE = TableStyle(
    [
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("LEADING", (0, 0), (-1, -1), 10),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F8FAFC")]),
    ]
)


def _clip(value: str) -> str:
    if len(value) <= MAX_CELL_CHARS:
        return value
    return value[: MAX_CELL_CHARS - 3] + "..."


def _fmt(value: float | None, suffix: str = "") -> str:
    return "N/A" if value is None else f"{value:g}{suffix}"


def _record_row(record: ResponseRecord) -> list[str]:
    return [
        _clip(record.timestamp),
        _clip(record.survey_title),
        _fmt(record.results.score),
        _fmt(record.results.percentage, "%"),
        _clip(location_key(record)),
    ]


def _chunks(rows: list[list[str]], size: int) -> list[list[list[str]]]:
    return [rows[start : start + size] for start in range(0, len(rows), size)]


def _number_pages(canvas, doc) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.drawRightString(doc.pagesize[0] - 0.75 * inch, 0.5 * inch, f"Page {doc.page}")
    canvas.restoreState()


def build_pdf_report(
    records: Sequence[ResponseRecord],
    metrics: AggregateMetrics,
    criteria: FilterCriteria,
    config: ExportsConfig | None = None,
    *,
    generated_at: datetime | None = None,
) -> bytes:
    """Summary report plus a paginated dump of every record in ``records``."""
    config = config or ExportsConfig()
    generated = generated_at or datetime.now(timezone.utc)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("ReportTitle", parent=styles["Heading1"], fontSize=18)
    heading_style = ParagraphStyle(
        "ReportHeading",
        parent=styles["Heading2"],
        fontSize=13,
        spaceBefore=14,
        spaceAfter=6,
    )

    story: list = [
        Paragraph("Survey Analytics Report", title_style),
        Paragraph(escape(f"Generated: {generated:%Y-%m-%d %H:%M} UTC"), styles["Normal"]),
        Spacer(1, 12),
        Paragraph("Key Metrics", heading_style),
    ]

    key_metrics = [
        ["Total Responses:", f"{metrics.total_count:,}"],
        ["Completed Responses:", f"{metrics.completed_count:,}"],
        ["Average Score:", _fmt(metrics.average_score)],
        ["Average Percentage:", _fmt(metrics.average_percentage, "%")],
        ["Email Request Rate:", _fmt(metrics.email_request_percentage, "%")],
    ]
    story.append(Table(key_metrics, colWidths=[2.2 * inch, 3.5 * inch], style=_KEY_VALUE_STYLE))

    story.append(Paragraph("Applied Filters", heading_style))
    filter_rows = [[f"{label}:", _clip(value)] for label, value in criteria.describe()]
    story.append(Table(filter_rows, colWidths=[2.2 * inch, 3.5 * inch], style=_KEY_VALUE_STYLE))

    if metrics.survey_version_counts:
        story.append(Paragraph("Responses by Survey", heading_style))
        version_rows = [["Survey", "Responses"]] + [
            [_clip(title), str(count)] for title, count in metrics.survey_version_counts.items()
        ]
        story.append(Table(version_rows, repeatRows=1, style=_GRID_STYLE))

    if metrics.category_stats:
        story.append(Paragraph("Category Performance", heading_style))
        category_rows = [["Category", "Average", "Count", "Performance", "Consistency"]] + [
            [
                _clip(stat.category),
                _fmt(stat.average, "%"),
                str(stat.count),
                stat.performance,
                stat.consistency,
            ]
            for stat in metrics.category_stats
        ]
        story.append(Table(category_rows, repeatRows=1, style=_GRID_STYLE))

    rows = [_record_row(record) for record in records]
    pages = _chunks(rows, config.pdf_table_rows_per_page)
    story.append(PageBreak())
    story.append(Paragraph(f"Responses ({len(rows):,} records)", heading_style))
    for index, chunk in enumerate(pages):
        story.append(Table([RECORD_COLUMNS, *chunk], repeatRows=1, style=_GRID_STYLE))
        if index < len(pages) - 1:
            story.append(PageBreak())

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZES[config.pdf_page_size],
        title="Survey Analytics Report",
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
    )
    doc.build(story, onFirstPage=_number_pages, onLaterPages=_number_pages)
    return buffer.getvalue()
