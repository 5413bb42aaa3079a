import logging
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image, ImageOps, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from cert_errors import ExtractionError

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")
RENDER_DPI = 300


def _scan(image):
    try:
        from pyzbar.pyzbar import ZBarSymbol
        from pyzbar.pyzbar import decode as zbar_decode
    except ImportError as e:
        # pyzbar loads the zbar shared library at import time
        raise ExtractionError(f"QR decoding unavailable: {e}") from e
    symbols = zbar_decode(image, symbols=[ZBarSymbol.QRCODE])
    if symbols:
        return symbols[0].data.decode("utf-8", errors="replace")
    return None


def decode_qr_image(image: Image.Image):
    """Return the text of the first QR code in the image, or None."""
    gray = image.convert("L")
    text = _scan(gray)
    if text is None:
        # tightly cropped codes decode once a quiet zone is restored
        text = _scan(ImageOps.expand(gray, border=32, fill=255))
    return text


def _embedded_qr_text(pdf_path: Path):
    try:
        reader = PdfReader(str(pdf_path))
        pages = list(reader.pages)
    except Exception as e:
        # pypdf raises a variety of errors on malformed input
        logger.warning("pypdf could not read %s: %s", pdf_path.name, e)
        return None

    for page_no, page in enumerate(pages, start=1):
        try:
            images = list(page.images)
        except (PyPdfError, NotImplementedError, ValueError) as e:
            logger.warning("Skipping images on page %d of %s: %s", page_no, pdf_path.name, e)
            continue
        for img in images:
            try:
                pil = img.image
            except (PyPdfError, NotImplementedError, ValueError, OSError) as e:
                logger.debug("Could not decode image %s on page %d: %s", img.name, page_no, e)
                continue
            if pil is None:
                continue
            text = decode_qr_image(pil)
            if text:
                logger.info("QR code found in an image on page %d of %s", page_no, pdf_path.name)
                return text
    return None


def render_page(page, dpi: int = RENDER_DPI) -> Image.Image:
    pix = page.get_pixmap(dpi=dpi, alpha=False)
    return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)


def _rendered_qr_text(pdf_path: Path):
    try:
        doc = fitz.open(str(pdf_path))
    except Exception as e:
        raise ExtractionError(f"Could not read PDF {pdf_path.name}: {e}") from e
    try:
        for page_no, page in enumerate(doc, start=1):
            text = decode_qr_image(render_page(page))
            if text:
                logger.info("QR code found on rendered page %d of %s", page_no, pdf_path.name)
                return text
    finally:
        doc.close()
    return None


def extract_qr_text_from_pdf(pdf_path) -> str:
    """Scan embedded page images first, then each page rendered at RENDER_DPI.

    Rendering catches codes drawn as vector graphics or flattened into the page.
    """
    pdf_path = Path(pdf_path)
    text = _embedded_qr_text(pdf_path) or _rendered_qr_text(pdf_path)
    if not text:
        raise ExtractionError("QR Code Text could not be extracted from the PDF")
    return text


def extract_qr_text_from_image(image_path) -> str:
    image_path = Path(image_path)
    try:
        with Image.open(image_path) as img:
            text = decode_qr_image(img)
    except (UnidentifiedImageError, OSError) as e:
        raise ExtractionError(f"Could not read image {image_path.name}: {e}") from e
    if not text:
        raise ExtractionError("QR Code Text could not be extracted from the image")
    return text


def extract_qr_text(path) -> str:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return extract_qr_text_from_pdf(path)
    if suffix in IMAGE_SUFFIXES:
        return extract_qr_text_from_image(path)
    raise ExtractionError(f"Unsupported document type: {suffix or path.name}")
