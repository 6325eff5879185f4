"""HTML to PDF conversion with xhtml2pdf."""

import logging
from io import BytesIO

from xhtml2pdf import pisa

from invoicing.shared.errors import InvoicingError

logger = logging.getLogger(__name__)


class PdfRenderError(InvoicingError):
    """xhtml2pdf reported errors while building the document."""


def render_pdf(html: str) -> bytes:
    """Convert an HTML document to PDF bytes.

    Raises:
        PdfRenderError: If xhtml2pdf reports errors
    """
    buffer = BytesIO()
    result = pisa.CreatePDF(src=html, dest=buffer, encoding="utf-8")

    if result.err:
        logger.error(f"PDF generation failed with {result.err} error(s)")
        raise PdfRenderError("Failed to generate PDF")

    pdf = buffer.getvalue()
    logger.debug(f"Generated PDF ({len(pdf)} bytes)")
    return pdf
