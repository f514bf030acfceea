# Overview: Renders a sale receipt as an A5 PDF.

from __future__ import annotations

from io import BytesIO

from flask import current_app
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A5
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..models import Sale
from ..money import money_str
from ..time_utils import to_utc_naive

NAVY = HexColor('#150151')
SLATE = HexColor('#64748B')
WHITE = HexColor('#FFFFFF')

W, H = A5
MARGIN = 12 * mm
CONTENT_W = W - 2 * MARGIN
ROW_H = 6 * mm

# x offsets of the item table columns
COL_DESC = MARGIN + 2 * mm
COL_PRICE = MARGIN + CONTENT_W * 0.62
COL_QTY = MARGIN + CONTENT_W * 0.74
COL_TOTAL = MARGIN + CONTENT_W - 2 * mm


def receipt_filename(sale: Sale) -> str:
    return f"receipt-{sale.sale_number}.pdf"


def _describe(item) -> str:
    name = item.product.name if item.product else f"Product {item.product_id}"
    if item.serial_unit is not None:
        name = f"{name} (VIN {item.serial_unit.vin})"
    return name if len(name) <= 48 else name[:45] + "..."


class ReceiptDocument:
    def __init__(self, sale: Sale, dealership_name: str):
        self.sale = sale
        self.dealership_name = dealership_name
        self.buffer = BytesIO()
        self.c = canvas.Canvas(self.buffer, pagesize=A5)
        self.c.setTitle(f"Receipt {sale.sale_number}")
        self.c.setAuthor(dealership_name)
        self.y = H - MARGIN

    def _new_page(self):
        self.c.showPage()
        self.y = H - MARGIN
        self._table_header()

    def _header(self):
        c = self.c
        c.setFillColor(NAVY)
        c.setFont("Helvetica-Bold", 16)
        c.drawString(MARGIN, self.y - 6 * mm, self.dealership_name)
        c.drawRightString(W - MARGIN, self.y - 6 * mm, "RECEIPT")
        self.y -= 14 * mm

        issued = to_utc_naive(self.sale.created_at).strftime("%d %b %Y %H:%M UTC")
        c.setFont("Helvetica", 9)
        c.setFillColor(SLATE)
        c.drawString(MARGIN, self.y, f"Receipt no: {self.sale.sale_number}")
        c.drawRightString(W - MARGIN, self.y, f"Date: {issued}")
        self.y -= 8 * mm

        customer = self.sale.customer
        c.setFillColor(NAVY)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(MARGIN, self.y, "To:")
        c.setFont("Helvetica", 10)
        c.drawString(MARGIN + 8 * mm, self.y, customer.full_name)
        self.y -= 5 * mm
        c.setFillColor(SLATE)
        c.setFont("Helvetica", 9)
        for line in [customer.phone] + (customer.address or "").splitlines():
            if line.strip():
                c.drawString(MARGIN + 8 * mm, self.y, line.strip())
                self.y -= 4.5 * mm
        self.y -= 4 * mm
        self._table_header()

    def _table_header(self):
        c = self.c
        c.setFillColor(NAVY)
        c.rect(MARGIN, self.y - ROW_H + 1.5 * mm, CONTENT_W, ROW_H, stroke=0, fill=1)
        c.setFillColor(WHITE)
        c.setFont("Helvetica-Bold", 8)
        c.drawString(COL_DESC, self.y - 2.5 * mm, "DESCRIPTION")
        c.drawRightString(COL_PRICE, self.y - 2.5 * mm, "PRICE")
        c.drawRightString(COL_QTY, self.y - 2.5 * mm, "QTY")
        c.drawRightString(COL_TOTAL, self.y - 2.5 * mm, "TOTAL")
        self.y -= ROW_H + 1 * mm

    def _items(self):
        c = self.c
        for item in self.sale.items:
            if self.y < MARGIN + 3 * ROW_H:
                self._new_page()
            c.setFillColor(NAVY)
            c.setFont("Helvetica", 8.5)
            c.drawString(COL_DESC, self.y - 2.5 * mm, _describe(item))
            c.drawRightString(COL_PRICE, self.y - 2.5 * mm, money_str(item.unit_price))
            c.drawRightString(COL_QTY, self.y - 2.5 * mm, str(item.quantity))
            c.drawRightString(COL_TOTAL, self.y - 2.5 * mm, money_str(item.line_total))
            self.y -= ROW_H

    def _footer(self):
        c = self.c
        self.y -= 2 * mm
        c.setStrokeColor(SLATE)
        c.line(COL_PRICE - 20 * mm, self.y, W - MARGIN, self.y)
        self.y -= 5 * mm
        c.setFillColor(NAVY)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(COL_PRICE - 20 * mm, self.y, "Total")
        c.drawRightString(COL_TOTAL, self.y, money_str(self.sale.total_amount))

        c.setFont("Helvetica-Oblique", 8)
        c.setFillColor(SLATE)
        c.drawCentredString(W / 2, MARGIN, "Thank you for your purchase.")

    def render(self) -> bytes:
        self._header()
        self._items()
        self._footer()
        self.c.showPage()
        self.c.save()
        return self.buffer.getvalue()


def render_receipt_pdf(sale: Sale) -> bytes:
    """PDF bytes for a committed sale."""
    dealership_name = current_app.config.get("DEALERSHIP_NAME", "Dealership")
    return ReceiptDocument(sale, dealership_name).render()
