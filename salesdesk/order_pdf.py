"""
salesdesk/order_pdf.py

Order PDF export (ReportLab canvas).

Layout: header band with the order code and status, client block, the item
table (code, product, client reference, qty, unit price, discount, net unit
price, subtotal) and the totals box. Long orders continue on new pages with
the table header repeated.

Every number comes from salesdesk.pricing, formatted with format_money, so the
PDF matches the JSON API and the print view.
"""

from __future__ import annotations

from io import BytesIO

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from .pricing import STATUS_CONFIRMED, format_money

# ─── COLOR PALETTE ───
NAVY = HexColor("#1B2A4A")
SLATE = HexColor("#64748B")
SLATE_PALE = HexColor("#F1F5F9")
WHITE = HexColor("#FFFFFF")
CHARCOAL = HexColor("#2D3748")
GREEN = HexColor("#166534")
AMBER = HexColor("#B45309")

W, H = A4
MARGIN = 40
CONTENT_W = W - 2 * MARGIN
ROW_H = 16
FOOTER_H = 40

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

STATUS_LABELS = {"quotation": "COTAÇÃO", "confirmed": "PEDIDO CONFIRMADO"}

# (title, width, align)
COLUMNS = [
    ("Código", 62, "left"),
    ("Produto", 150, "left"),
    ("Ref. cliente", 66, "left"),
    ("Qtd", 34, "right"),
    ("Preço un.", 56, "right"),
    ("Desc. %", 44, "right"),
    ("Preço líq.", 56, "right"),
    ("Subtotal", 47, "right"),
]


def _fit(c: canvas.Canvas, text: str, width: float, font: str, size: float) -> str:
    """Truncate text with an ellipsis so it fits in width."""
    text = text or ""
    if c.stringWidth(text, font, size) <= width:
        return text
    while text and c.stringWidth(text + "…", font, size) > width:
        text = text[:-1]
    return text + "…"


class OrderPDF:
    def __init__(self, order, app_name: str | None = None):
        self.order = order
        self.app_name = app_name or "SalesDesk"
        self.buffer = BytesIO()
        self.c = canvas.Canvas(self.buffer, pagesize=A4)
        self.c.setTitle(f"{order.code}")
        self.c.setAuthor(self.app_name)
        self.page_num = 0
        self.y = H - MARGIN

    # ─── PAGE FRAME ───
    def new_page(self):
        if self.page_num:
            self.footer()
            self.c.showPage()
        self.page_num += 1
        self.y = H - MARGIN
        self.header()

    def header(self):
        c = self.c
        c.setFillColor(NAVY)
        c.rect(0, H - 70, W, 70, fill=1, stroke=0)

        c.setFillColor(WHITE)
        c.setFont(FONT_BOLD, 16)
        c.drawString(MARGIN, H - 38, self.app_name)
        c.setFont(FONT, 9)
        c.drawString(MARGIN, H - 54, STATUS_LABELS.get(self.order.status, self.order.status.upper()))

        c.setFont(FONT_BOLD, 14)
        c.drawRightString(W - MARGIN, H - 38, self.order.code)
        if self.order.created_at:
            c.setFont(FONT, 9)
            c.drawRightString(W - MARGIN, H - 54, self.order.created_at.strftime("%d/%m/%Y"))

        self.y = H - 90

    def footer(self):
        c = self.c
        c.setStrokeColor(SLATE)
        c.setLineWidth(0.5)
        c.line(MARGIN, FOOTER_H, W - MARGIN, FOOTER_H)
        c.setFillColor(SLATE)
        c.setFont(FONT, 8)
        c.drawString(MARGIN, FOOTER_H - 12, f"{self.app_name} · {self.order.code}")
        c.drawRightString(W - MARGIN, FOOTER_H - 12, f"Página {self.page_num}")

    # ─── BLOCKS ───
    def client_block(self):
        c = self.c
        client = self.order.client
        rep = self.order.representative

        c.setFillColor(CHARCOAL)
        c.setFont(FONT_BOLD, 11)
        c.drawString(MARGIN, self.y, _fit(c, client.name if client else "-", CONTENT_W, FONT_BOLD, 11))
        self.y -= 14

        c.setFont(FONT, 9)
        lines = []
        if client:
            lines.append(f"Código: {client.code}    CNPJ: {client.cnpj}")
            place = ", ".join(p for p in (client.address, client.city, client.state) if p)
            if place:
                lines.append(place)
            contact = "    ".join(p for p in (client.phone, client.email) if p)
            if contact:
                lines.append(contact)
        if rep:
            lines.append(f"Representante: {rep.name}")
        if self.order.payment_terms:
            lines.append(f"Condição de pagamento: {self.order.payment_terms}")

        for line in lines:
            c.drawString(MARGIN, self.y, _fit(c, line, CONTENT_W, FONT, 9))
            self.y -= 12

        self.y -= 8

    def table_header(self):
        c = self.c
        c.setFillColor(SLATE_PALE)
        c.rect(MARGIN, self.y - 4, CONTENT_W, ROW_H, fill=1, stroke=0)
        c.setFillColor(NAVY)
        self._draw_row([title for title, _, _ in COLUMNS], FONT_BOLD, 8)
        self.y -= ROW_H

    def _draw_row(self, values, font, size):
        c = self.c
        c.setFont(font, size)
        x = MARGIN
        for (_, width, align), value in zip(COLUMNS, values):
            text = _fit(c, str(value), width - 4, font, size)
            if align == "right":
                c.drawRightString(x + width - 2, self.y, text)
            else:
                c.drawString(x + 2, self.y, text)
            x += width

    def items_table(self, lines):
        self.table_header()

        for index, (item, line) in enumerate(lines):
            if self.y < FOOTER_H + 30:
                self.new_page()
                self.table_header()

            if index % 2:
                self.c.setFillColor(SLATE_PALE)
                self.c.rect(MARGIN, self.y - 4, CONTENT_W, ROW_H, fill=1, stroke=0)

            product = item.product
            self.c.setFillColor(CHARCOAL)
            self._draw_row(
                [
                    product.code if product else "-",
                    product.name if product else "-",
                    item.client_ref or "",
                    item.quantity,
                    format_money(item.unit_price),
                    format_money(item.discount_percentage or 0),
                    format_money(line["discounted_unit_price"]),
                    format_money(line["subtotal"]),
                ],
                FONT,
                8,
            )
            self.y -= ROW_H

        self.y -= 6

    def totals_box(self, summary):
        rows = [
            ("Peças", str(summary["total_pieces"])),
            ("Subtotal", f"R$ {format_money(summary['subtotal'])}"),
            ("Descontos", f"R$ {format_money(summary['total_discount'])}"),
            ("Frete/Impostos", f"R$ {format_money(summary['taxes'])}"),
            ("Total", f"R$ {format_money(summary['total'])}"),
        ]
        if self.order.status == STATUS_CONFIRMED:
            rows.append(("Comissão", f"R$ {format_money(summary['total_commission'])}"))

        needed = len(rows) * 14 + 20
        if self.y - needed < FOOTER_H + 10:
            self.new_page()

        c = self.c
        box_w = 200
        x = W - MARGIN - box_w
        c.setStrokeColor(SLATE)
        c.setLineWidth(0.5)
        c.rect(x, self.y - needed + 10, box_w, needed - 4, fill=0, stroke=1)

        y = self.y - 6
        for label, value in rows:
            bold = label == "Total"
            c.setFont(FONT_BOLD if bold else FONT, 10 if bold else 9)
            c.setFillColor(GREEN if label == "Comissão" else CHARCOAL)
            c.drawString(x + 8, y, label)
            c.drawRightString(x + box_w - 8, y, value)
            y -= 14

        self.y -= needed

    def notes(self):
        if not self.order.notes:
            return
        c = self.c
        if self.y < FOOTER_H + 40:
            self.new_page()
        c.setFillColor(AMBER)
        c.setFont(FONT_BOLD, 9)
        c.drawString(MARGIN, self.y, "Observações")
        self.y -= 12
        c.setFillColor(CHARCOAL)
        c.setFont(FONT, 9)
        for raw_line in self.order.notes.splitlines():
            if self.y < FOOTER_H + 14:
                self.new_page()
            c.drawString(MARGIN, self.y, _fit(c, raw_line, CONTENT_W, FONT, 9))
            self.y -= 12

    def build(self) -> bytes:
        summary = self.order.pricing()

        self.new_page()
        self.client_block()
        self.items_table(list(zip(self.order.items, summary["lines"])))
        self.totals_box(summary)
        self.notes()
        self.footer()

        self.c.save()
        return self.buffer.getvalue()


def build_order_pdf(order, app_name: str | None = None) -> bytes:
    """Render an order to PDF bytes."""
    return OrderPDF(order, app_name=app_name).build()
