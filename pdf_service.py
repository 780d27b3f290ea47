"""pdf_service.py

PDF export of a query result (saved custom report) as a plain table.

- Deterministic canvas drawing, built-in Helvetica only
- Landscape when the result is wide
- Cells are flattened to one line and truncated to the column width
"""

from __future__ import annotations

from io import BytesIO
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen.canvas import Canvas

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
CELL_FONT_SIZE = 8
ROW_HEIGHT = 12


def _safe_text(v: Any) -> str:
    s = "" if v is None else str(v)
    return " ".join(s.replace("\r", " ").replace("\n", " ").split()).strip()


def _wrap_lines(text: str, max_chars: int) -> list[str]:
    text = _safe_text(text)
    if not text:
        return []
    words = text.split(" ")
    lines: list[str] = []
    cur: list[str] = []
    cur_len = 0
    for w in words:
        add = (1 if cur else 0) + len(w)
        if cur_len + add <= max_chars:
            cur.append(w)
            cur_len += add
        else:
            if cur:
                lines.append(" ".join(cur))
            cur = [w]
            cur_len = len(w)
    if cur:
        lines.append(" ".join(cur))
    return lines


def _fit(text: str, width: float, font: str, size: int) -> str:
    """Truncate ``text`` with an ellipsis so it fits ``width`` points."""
    if stringWidth(text, font, size) <= width:
        return text
    ell = "..."
    while text and stringWidth(text + ell, font, size) > width:
        text = text[:-1]
    return text + ell if text else ""


def render_query_result_pdf(
    title: str,
    columns: Sequence[str],
    rows: List[Dict[str, Any]],
    *,
    description: str = "",
    sql: str = "",
    generated_at: Optional[datetime] = None,
    brand: str = "LMS Dashboard",
) -> bytes:
    """Render a result table to PDF bytes."""

    cols = list(columns) or (list(rows[0].keys()) if rows else [])
    pagesize = landscape(A4) if len(cols) > 6 else A4

    buf = BytesIO()
    c = Canvas(buf, pagesize=pagesize)
    w, h = pagesize

    left = 15 * mm
    right = 15 * mm
    top = 15 * mm
    bottom = 15 * mm
    y = h - top
    usable = w - left - right
    col_w = usable / max(1, len(cols))
    stamp = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")

    def hr():
        nonlocal y
        c.setLineWidth(0.6)
        c.line(left, y, w - right, y)
        y -= 6

    def header_row():
        nonlocal y
        c.setFont(FONT_BOLD, CELL_FONT_SIZE)
        for i, name in enumerate(cols):
            c.drawString(left + i * col_w + 2, y, _fit(_safe_text(name), col_w - 4, FONT_BOLD, CELL_FONT_SIZE))
        y -= 4
        hr()
        c.setFont(FONT, CELL_FONT_SIZE)

    def new_page():
        nonlocal y
        c.showPage()
        y = h - top
        header_row()

    # Title block
    c.setFont(FONT_BOLD, 16)
    for line in _wrap_lines(title or "Report", 80):
        c.drawString(left, y, line)
        y -= 20

    c.setFont(FONT, 9)
    c.drawString(left, y, " • ".join([brand, stamp, f"{len(rows)} rows"]))
    y -= 12

    if description:
        c.setFont(FONT, 10)
        for line in _wrap_lines(description, 120):
            c.drawString(left, y, line)
            y -= 12

    if sql:
        c.setFont("Courier", 8)
        for line in _wrap_lines(sql, 140)[:6]:
            c.drawString(left, y, line)
            y -= 10
    y -= 4
    hr()

    if not cols:
        c.setFont(FONT, 10)
        c.drawString(left, y, "Query returned no results.")
    else:
        header_row()
        for row in rows:
            if y < bottom + ROW_HEIGHT:
                new_page()
            for i, name in enumerate(cols):
                cell = _fit(_safe_text(row.get(name)), col_w - 4, FONT, CELL_FONT_SIZE)
                c.drawString(left + i * col_w + 2, y, cell)
            y -= ROW_HEIGHT

    c.showPage()
    c.save()
    return buf.getvalue()
