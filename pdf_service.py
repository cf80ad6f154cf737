# pdf_service.py
import io
import re
import logging
from dataclasses import dataclass

from reportlab.pdfgen import canvas
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib import colors
from reportlab.lib.utils import ImageReader

from invoice_schema import InvoiceData, UserConfig, load_invoice
from preview import render_preview
from preview_raster import rasterize_preview
from storage import StorageError

logger = logging.getLogger(__name__)

PAGE_W_MM = 210.0
PAGE_H_MM = 297.0
FOOTER_OFFSET_MM = 10.0

# Less than half a pixel left over is not a page.
PAGINATION_EPSILON_PX = 0.5


class PdfGenerationError(Exception):
    """Raised for any failure while rasterizing or assembling an invoice PDF."""


@dataclass(frozen=True)
class PdfOptions:
    scale: float = 2.0
    margin_mm: float = 15.0
    footer_reserve_mm: float = 5.0
    image_format: str = "PNG"
    jpeg_quality: int = 95
    font_path: str = ""
    bold_font_path: str = ""

    @classmethod
    def from_config(cls, cfg) -> "PdfOptions":
        """Build options from a Flask config (or any mapping with the PDF_* keys)."""
        return cls(
            scale=float(cfg.get("PDF_SCALE", cls.scale)),
            margin_mm=float(cfg.get("PDF_MARGIN_MM", cls.margin_mm)),
            footer_reserve_mm=float(cfg.get("PDF_FOOTER_RESERVE_MM", cls.footer_reserve_mm)),
            image_format=str(cfg.get("PDF_IMAGE_FORMAT", cls.image_format) or "PNG").upper(),
            jpeg_quality=int(cfg.get("PDF_JPEG_QUALITY", cls.jpeg_quality)),
            font_path=cfg.get("PDF_FONT_PATH", "") or "",
            bold_font_path=cfg.get("PDF_BOLD_FONT_PATH", "") or "",
        )


@dataclass(frozen=True)
class PageBand:
    page_number: int
    top_px: float
    height_px: float


def pdf_filename(invoice_number: str) -> str:
    # anything outside [A-Za-z0-9-] becomes '-'
    safe = re.sub(r"[^A-Za-z0-9-]", "-", invoice_number or "")
    return f"invoice-{safe}.pdf"


def content_width_mm(margin_mm: float) -> float:
    return PAGE_W_MM - 2 * margin_mm


def usable_height_mm(margin_mm: float, footer_reserve_mm: float) -> float:
    return PAGE_H_MM - 2 * margin_mm - footer_reserve_mm


def paginate(bitmap_width: int, bitmap_height: int, margin_mm: float = 15.0, footer_reserve_mm: float = 5.0) -> list[PageBand]:
    """
    Split a bitmap into page-sized horizontal bands.

    The bitmap is scaled so its width fills the content width; each band is one
    page of usable height in bitmap pixels. The loop stops once the remaining
    height is within PAGINATION_EPSILON_PX, so content that fills an exact
    number of pages never gets a blank trailing page.
    """
    if bitmap_width <= 0 or bitmap_height <= 0:
        raise ValueError(f"Invalid bitmap size: {bitmap_width}x{bitmap_height}")

    content_w = content_width_mm(margin_mm)
    usable_h = usable_height_mm(margin_mm, footer_reserve_mm)
    if content_w <= 0 or usable_h <= 0:
        raise ValueError(f"Margins leave no room for content: margin={margin_mm}mm footer={footer_reserve_mm}mm")

    band_px = usable_h * bitmap_width / content_w

    bands = []
    offset = 0.0
    while bitmap_height - offset > PAGINATION_EPSILON_PX:
        height = min(band_px, bitmap_height - offset)
        bands.append(PageBand(page_number=len(bands) + 1, top_px=offset, height_px=height))
        offset += band_px
    return bands


def _encode_band(band_img, options: PdfOptions) -> io.BytesIO:
    buf = io.BytesIO()
    if options.image_format == "JPEG":
        band_img.save(buf, format="JPEG", quality=options.jpeg_quality)
    else:
        band_img.save(buf, format="PNG")
    buf.seek(0)
    return buf


def build_pdf(bitmap, options: PdfOptions | None = None, title: str = "Invoice") -> bytes:
    """
    Assemble an A4 PDF from a rasterized preview: one band per page at the top
    margin, with a centered 'Page N' footer.
    """
    options = options or PdfOptions()
    PAGE_W, PAGE_H = A4
    M = options.margin_mm

    content_w = content_width_mm(M)
    mm_per_px = content_w / bitmap.width

    out = io.BytesIO()
    pdf = canvas.Canvas(out, pagesize=A4)
    pdf.setTitle(title)

    for band in paginate(bitmap.width, bitmap.height, M, options.footer_reserve_mm):
        top = int(round(band.top_px))
        if top >= bitmap.height:
            break
        bottom = min(bitmap.height, max(top + 1, int(round(band.top_px + band.height_px))))
        band_img = bitmap.crop((0, top, bitmap.width, bottom))
        band_h = (bottom - top) * mm_per_px

        pdf.drawImage(
            ImageReader(_encode_band(band_img, options)),
            M * mm,
            PAGE_H - (M + band_h) * mm,
            width=content_w * mm,
            height=band_h * mm,
        )

        pdf.setFont("Helvetica", 9)
        pdf.setFillColor(colors.grey)
        pdf.drawCentredString(PAGE_W / 2, FOOTER_OFFSET_MM * mm, f"Page {band.page_number}")
        pdf.setFillColor(colors.black)
        pdf.showPage()

    pdf.save()
    return out.getvalue()


def export_invoice_pdf(data: InvoiceData, config: UserConfig | None = None, options: PdfOptions | None = None) -> tuple[str, bytes]:
    """
    Render, rasterize and paginate an invoice.

    Returns: (download filename, PDF bytes).
    Raises PdfGenerationError on any failure; nothing partial is returned.
    """
    options = options or PdfOptions()
    filename = pdf_filename(data.invoice_number)
    try:
        doc = render_preview(data, config)
        bitmap = rasterize_preview(
            doc,
            scale=options.scale,
            font_path=options.font_path,
            bold_font_path=options.bold_font_path,
        )
        content = build_pdf(bitmap, options, title=f"Invoice {data.invoice_number}")
    except Exception as exc:
        logger.exception("PDF generation failed for invoice %s", data.invoice_number)
        raise PdfGenerationError("PDF generation failed") from exc
    return filename, content


def generate_and_store_pdf(store, storage, user_id: int, invoice_id: int, options: PdfOptions | None = None) -> str:
    """
    Generates (or regenerates) the PDF for a stored invoice, uploads it under the
    owner's storage prefix and updates invoice.pdf_path.

    Returns: public URL of the stored PDF.
    """
    inv = store.get_invoice(user_id, invoice_id)
    data = load_invoice(inv.data)
    config = store.get_config(user_id)

    filename, content = export_invoice_pdf(data, config, options)
    url = storage.upload(user_id, f"{invoice_id}/{filename}", content)
    store.set_pdf_path(user_id, invoice_id, url)

    # invoice number changed -> the old artifact has a different name
    if inv.pdf_path and inv.pdf_path != url:
        try:
            storage.remove(inv.pdf_path)
        except StorageError:
            logger.warning("Could not remove previous PDF %s for invoice id=%s", inv.pdf_path, invoice_id)

    logger.info("Stored PDF for invoice id=%s user=%s at %s", invoice_id, user_id, url)
    return url
