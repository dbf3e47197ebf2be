from __future__ import annotations

import io
import logging
import os
from datetime import datetime
from typing import Iterable, List, Optional

from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

from order_builder.config import settings
from order_builder.constants import ORDER_COLUMNS, PDF_FILENAME
from order_builder.services.cart import CartItem, Totals, cart_totals
from order_builder.services.containers import ContainerFit
from order_builder.services.order_table import order_row
from order_builder.utils.formatters import kg_total, m3_total

logger = logging.getLogger(__name__)

# ширина колонок в пунктах, в порядке ORDER_COLUMNS
COLUMN_WIDTHS = (70, 150, 55, 55, 70, 45, 40, 50, 45, 45, 55, 50, 72)
NUMERIC_COLUMNS = frozenset(range(5, 12))
LEFT = 20
ROW_HEIGHT = 14
BOTTOM = 50


def _column_x() -> List[int]:
    xs = []
    x = LEFT
    for w in COLUMN_WIDTHS:
        xs.append(x)
        x += w
    return xs


def _fit_text(text: str, width: int) -> str:
    # Helvetica 8pt: примерно 4pt на символ
    limit = max(3, width // 4)
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _draw_row(c: canvas.Canvas, y: float, cells, xs: List[int]) -> None:
    for i, value in enumerate(cells):
        text = str(value)
        if i in NUMERIC_COLUMNS:
            c.drawRightString(xs[i] + COLUMN_WIDTHS[i] - 4, y, text)
        else:
            c.drawString(xs[i], y, _fit_text(text, COLUMN_WIDTHS[i]))


def _draw_header(c: canvas.Canvas, y: float, xs: List[int]) -> float:
    c.setFont("Helvetica-Bold", 8)
    _draw_row(c, y, ORDER_COLUMNS, xs)
    y -= 6
    c.line(LEFT, y, xs[-1] + COLUMN_WIDTHS[-1], y)
    c.setFont("Helvetica", 8)
    return y - 12


def generate_order_pdf(
    items: Iterable[CartItem],
    totals: Optional[Totals] = None,
    fit: Optional[ContainerFit] = None,
) -> bytes:
    items = list(items)
    totals = totals or cart_totals(items)
    xs = _column_x()

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=landscape(A4))
    w, h = landscape(A4)

    y = h - 40
    c.setFont("Helvetica-Bold", 14)
    c.drawString(LEFT, y, "Total order")
    c.setFont("Helvetica", 9)
    c.drawRightString(w - LEFT, y, datetime.now().strftime("%Y-%m-%d %H:%M"))
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(
        LEFT,
        y,
        f"Boxes: {totals.total_boxes}   Pcs: {totals.total_pcs}   "
        f"Total KG: {kg_total(totals.total_kg)}   Total m3: {m3_total(totals.total_m3)}",
    )
    y -= 16

    if fit is not None:
        spec = fit.container
        line = (
            f"Container {spec.label}: KG {fit.kg_percent}% ({kg_total(fit.total_kg)}/{kg_total(spec.capacity_kg)})   "
            f"m3 {fit.m3_percent}% ({m3_total(fit.total_m3)}/{m3_total(spec.capacity_m3)})"
        )
        if fit.overloaded:
            line += "   OVERLOADED"
        c.drawString(LEFT, y, line)
        y -= 16

    y -= 8
    y = _draw_header(c, y, xs)

    for it in items:
        _draw_row(c, y, order_row(it), xs)
        y -= ROW_HEIGHT
        if y < BOTTOM:
            c.showPage()
            y = _draw_header(c, h - 40, xs)

    c.save()
    return buf.getvalue()


def save_order_pdf(
    items: Iterable[CartItem],
    path: Optional[str] = None,
    fit: Optional[ContainerFit] = None,
) -> str:
    if path is None:
        os.makedirs(settings.export_dir, exist_ok=True)
        path = os.path.join(settings.export_dir, PDF_FILENAME)

    data = generate_order_pdf(items, fit=fit)
    with open(path, "wb") as f:
        f.write(data)

    logger.info("Order PDF written: %s", path)
    return path
