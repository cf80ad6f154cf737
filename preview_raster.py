"""
Rasterize a PreviewDocument into a single Pillow image.

Layout is done in CSS-like pixels on an A4-wide surface (794px at 96dpi) and
multiplied by `scale` so text stays sharp once the bitmap is shrunk onto the
PDF page. The whole document is laid out first, then the image is allocated
at its full height, so nothing is clipped to a viewport.
"""
from __future__ import annotations

from PIL import Image, ImageDraw, ImageFont

from preview import PreviewDocument, ServiceBlock

BASE_WIDTH = 794
PADDING = 40

TEXT = "#111827"
MUTED = "#6B7280"
ACCENT = "#2563EB"
BORDER = "#E5E7EB"
BAND = "#F9FAFB"
ACCENT_BG = "#EFF6FF"
ACCENT_BORDER = "#DBEAFE"


class _Fonts:
    def __init__(self, scale: float, font_path: str = "", bold_font_path: str = ""):
        self.scale = scale
        self.font_path = font_path
        self.bold_font_path = bold_font_path
        self._cache = {}

    def synthetic_bold(self) -> bool:
        return not self.bold_font_path

    def get(self, size: float, bold: bool = False):
        key = (size, bold)
        if key not in self._cache:
            px = max(1, int(round(size * self.scale)))
            path = self.bold_font_path if (bold and self.bold_font_path) else self.font_path
            if path:
                self._cache[key] = ImageFont.truetype(path, px)
            else:
                self._cache[key] = ImageFont.load_default(size=px)
        return self._cache[key]


def _wrap_text(text, font, max_width):
    words = str(text).split()
    lines = []
    current = ""

    def split_long_token(token: str):
        """Break a single long token (like an email) into width-safe chunks."""
        if font.getlength(token) <= max_width:
            return [token]
        chunks = []
        remaining = token
        while remaining:
            lo, hi = 1, len(remaining)
            fit = 1
            while lo <= hi:
                mid = (lo + hi) // 2
                if font.getlength(remaining[:mid]) <= max_width:
                    fit = mid
                    lo = mid + 1
                else:
                    hi = mid - 1
            chunks.append(remaining[:fit])
            remaining = remaining[fit:]
        return chunks

    expanded_words = []
    for w in words:
        expanded_words.extend(split_long_token(w))

    for w in expanded_words:
        test = current + (" " if current else "") + w
        if font.getlength(test) <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            current = w
    if current:
        lines.append(current)
    return lines or [""]


def _wrap_paragraphs(text, font, max_width):
    out = []
    for para in str(text or "").splitlines():
        out.extend(_wrap_text(para, font, max_width) if para.strip() else [""])
    return out


class _Surface:
    """Collects draw ops while laying out top to bottom."""

    def __init__(self, scale: float, fonts: _Fonts):
        self.s = scale
        self.fonts = fonts
        self.width = int(round(BASE_WIDTH * scale))
        self.left = PADDING * scale
        self.right = self.width - PADDING * scale
        self.y = PADDING * scale
        self._ops = []

    def u(self, v: float) -> float:
        return v * self.s

    def line_height(self, size: float) -> float:
        return size * 1.45 * self.s

    def text(self, x, y, text, size=12, bold=False, fill=TEXT, align="left"):
        font = self.fonts.get(size, bold)
        text = str(text)
        width = font.getlength(text)
        if align == "right":
            x -= width
        elif align == "center":
            x -= width / 2
        stroke = max(1, int(round(0.35 * self.s))) if (bold and self.fonts.synthetic_bold()) else 0
        self._ops.append(("text", (x, y), text, font, fill, stroke))
        return self.line_height(size)

    def lines(self, x, y, lines, size=12, bold=False, fill=TEXT, align="left"):
        for ln in lines:
            y += self.text(x, y, ln, size, bold, fill, align)
        return y

    def rect(self, box, fill=None, outline=None, width=1):
        self._ops.append(("rect", tuple(box), fill, outline, max(1, int(round(width * self.s)))))

    def hline(self, x0, x1, y, fill=BORDER, width=1):
        self._ops.append(("line", (x0, y, x1, y), fill, max(1, int(round(width * self.s)))))

    def render(self) -> Image.Image:
        height = int(round(self.y + PADDING * self.s))
        img = Image.new("RGB", (self.width, height), "white")
        draw = ImageDraw.Draw(img)
        for op in self._ops:
            kind = op[0]
            if kind == "text":
                _, xy, text, font, fill, stroke = op
                draw.text(xy, text, font=font, fill=fill, stroke_width=stroke, stroke_fill=fill)
            elif kind == "rect":
                _, box, fill, outline, width = op
                draw.rectangle(box, fill=fill, outline=outline, width=width)
            elif kind == "line":
                _, xy, fill, width = op
                draw.line(xy, fill=fill, width=width)
        return img


def _draw_header(sf: _Surface, doc: PreviewDocument):
    top = sf.y
    y = top
    y += sf.text(sf.left, y, doc.title, size=30, bold=True)
    y += sf.u(4)
    y += sf.text(sf.left, y, f"Invoice Date: {doc.invoice_date}", size=11, fill=MUTED)
    y += sf.text(sf.left, y, f"Due Date: {doc.due_date}", size=11, fill=MUTED)

    box_w = sf.u(220)
    box_x0 = sf.right - box_w
    pad = sf.u(14)
    box_h = pad * 2 + sf.line_height(11) + sf.line_height(20)
    sf.rect((box_x0, top, sf.right, top + box_h), fill=ACCENT_BG, outline=ACCENT_BORDER)
    cx = box_x0 + box_w / 2
    by = top + pad
    by += sf.text(cx, by, "Invoice Number", size=11, fill=MUTED, align="center")
    sf.text(cx, by, doc.invoice_number, size=20, bold=True, fill=ACCENT, align="center")

    sf.y = max(y, top + box_h) + sf.u(30)


def _draw_parties(sf: _Surface, doc: PreviewDocument):
    gap = sf.u(30)
    col_w = (sf.right - sf.left - gap) / 2
    font = sf.fonts.get(12)
    top = sf.y

    def column(x, label, lines):
        y = top + sf.text(x, top, label, size=10, bold=True, fill=MUTED)
        wrapped = []
        for ln in lines:
            wrapped.extend(_wrap_text(ln, font, col_w))
        if wrapped:
            y += sf.text(x, y, wrapped[0], size=12, bold=True)
            y = sf.lines(x, y, wrapped[1:], size=12)
        return y

    y_from = column(sf.left, "FROM", doc.issuer_lines)
    y_to = column(sf.left + col_w + gap, "BILL TO", doc.client_lines)
    sf.y = max(y_from, y_to) + sf.u(28)


def _draw_service(sf: _Surface, block: ServiceBlock):
    top = sf.y
    pad = sf.u(16)
    inner_l = sf.left + pad
    inner_r = sf.right - pad
    rate_w = sf.u(140)

    # header band
    title_font = sf.fonts.get(14, True)
    desc_font = sf.fonts.get(11)
    title_lines = _wrap_text(block.title, title_font, inner_r - inner_l - rate_w)
    desc_lines = _wrap_paragraphs(block.description, desc_font, inner_r - inner_l - rate_w) if block.description else []
    band_h = pad * 2 + len(title_lines) * sf.line_height(14) + len(desc_lines) * sf.line_height(11)
    band_h = max(band_h, pad * 2 + sf.line_height(10) + sf.line_height(13))
    sf.rect((sf.left, top, sf.right, top + band_h), fill=BAND)
    y = top + pad
    y = sf.lines(inner_l, y, title_lines, size=14, bold=True)
    sf.lines(inner_l, y, desc_lines, size=11, fill=MUTED)
    ry = top + pad
    ry += sf.text(inner_r, ry, "Rate", size=10, fill=MUTED, align="right")
    sf.text(inner_r, ry, block.rate, size=13, bold=True, align="right")
    y = top + band_h

    # columns: task | hours | rate | amount
    task_w = (inner_r - inner_l) * 0.5
    hours_cx = inner_l + task_w + (inner_r - inner_l) * 0.125
    rate_cx = inner_l + task_w + (inner_r - inner_l) * 0.3

    y += sf.u(8)
    sf.text(inner_l, y, "Task", size=10, bold=True, fill=MUTED)
    sf.text(hours_cx, y, "Hours", size=10, bold=True, fill=MUTED, align="center")
    sf.text(rate_cx, y, "Rate", size=10, bold=True, fill=MUTED, align="center")
    y += sf.text(inner_r, y, "Amount", size=10, bold=True, fill=MUTED, align="right")
    y += sf.u(4)

    row_font = sf.fonts.get(12)
    small_font = sf.fonts.get(10)
    for line in block.lines:
        sf.hline(inner_l, inner_r, y)
        y += sf.u(8)
        row_top = y
        y = sf.lines(inner_l, y, _wrap_text(line.title, row_font, task_w - sf.u(10)), size=12)
        if line.description:
            y = sf.lines(inner_l, y, _wrap_paragraphs(line.description, small_font, task_w - sf.u(10)), size=10, fill=MUTED)
        sf.text(hours_cx, row_top, line.hours, size=12, align="center")
        sf.text(rate_cx, row_top, line.rate, size=12, align="center")
        sf.text(inner_r, row_top, line.amount, size=12, bold=True, align="right")
        y += sf.u(8)

    # service total band
    total_h = pad + sf.line_height(13)
    sf.rect((sf.left, y, sf.right, y + total_h), fill=BAND)
    sf.hline(sf.left, sf.right, y)
    ty = y + pad / 2
    sf.text(inner_l, ty + sf.u(2), "Service Total", size=11, fill=MUTED)
    sf.text(inner_r, ty, block.total, size=13, bold=True, align="right")
    y += total_h

    sf.rect((sf.left, top, sf.right, y), outline=BORDER)
    sf.y = y + sf.u(24)


def _draw_breakdown(sf: _Surface, doc: PreviewDocument):
    box_w = sf.u(290)
    x0 = sf.right - box_w
    y = sf.y
    for row in doc.breakdown:
        if row.emphasis:
            sf.hline(x0, sf.right, y, fill="#D1D5DB", width=2)
            y += sf.u(10)
            sf.text(x0, y, f"{row.label}:", size=16, bold=True)
            y += sf.text(sf.right, y, row.value, size=16, bold=True, fill=ACCENT, align="right")
        else:
            sf.text(x0, y, f"{row.label}:", size=12, fill=MUTED)
            y += sf.text(sf.right, y, row.value, size=12, bold=True, align="right")
            y += sf.u(4)
            sf.hline(x0, sf.right, y)
            y += sf.u(6)
    sf.y = y + sf.u(24)


def _draw_footer_sections(sf: _Surface, doc: PreviewDocument):
    width = sf.right - sf.left
    font = sf.fonts.get(12)
    sections = []
    if doc.notes:
        sections.append(("Notes", _wrap_paragraphs(doc.notes, font, width)))
    if doc.payment_terms:
        sections.append(("Payment Terms", _wrap_text(doc.payment_terms, font, width)))
    if doc.bank_details:
        sections.append(("Bank Details", _wrap_paragraphs(doc.bank_details, font, width)))

    for title, lines in sections:
        sf.hline(sf.left, sf.right, sf.y)
        y = sf.y + sf.u(16)
        y += sf.text(sf.left, y, title, size=13, bold=True)
        y += sf.u(4)
        sf.y = sf.lines(sf.left, y, lines, size=12) + sf.u(16)


def rasterize_preview(
    doc: PreviewDocument,
    scale: float = 2.0,
    font_path: str = "",
    bold_font_path: str = "",
) -> Image.Image:
    """
    Render the full preview into one RGB bitmap of width BASE_WIDTH*scale.
    """
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")

    sf = _Surface(scale, _Fonts(scale, font_path, bold_font_path))
    _draw_header(sf, doc)
    _draw_parties(sf, doc)
    for block in doc.services:
        _draw_service(sf, block)
    _draw_breakdown(sf, doc)
    _draw_footer_sections(sf, doc)
    return sf.render()
