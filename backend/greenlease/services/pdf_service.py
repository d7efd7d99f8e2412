"""
PDF rendering through PDFShift.

HTML + CSS in, PDF bytes out. No retry: a failed render raises
PdfRenderError and the caller reports it.
"""
import os
import logging
import httpx
from typing import Optional

logger = logging.getLogger(__name__)

PDFSHIFT_API_URL = os.getenv("PDFSHIFT_API_URL", "https://api.pdfshift.io/v3/convert/pdf")
PDF_TIMEOUT_SECONDS = float(os.getenv("PDF_TIMEOUT_SECONDS", "60"))

FONT_LINK = '<link href="https://fonts.googleapis.com/css2?family=Frank+Ruhl+Libre:wght@400;700&display=swap" rel="stylesheet">'
BASE_CSS = """
      .contract-preview, .page, body {
        font-family: 'Frank Ruhl Libre', 'Noto Sans Hebrew', Arial, sans-serif !important;
      }
"""

PAGE_MARGINS = {"top": "2.5cm", "bottom": "2.5cm", "left": "1.5cm", "right": "1.5cm"}


class PdfRenderError(Exception):
    """PDF could not be produced."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def build_pdf_source(html: str, css: str = "") -> str:
    """Full HTML document for the renderer.

    A document with a ``<head>`` gets the font and CSS injected into it;
    anything else is wrapped in a right-to-left document shell.
    """
    style = f"{FONT_LINK}<style>{BASE_CSS}{css or ''}</style>"
    head_end = html.lower().find("</head>")
    if head_end != -1:
        return html[:head_end] + style + html[head_end:]
    return f'<!DOCTYPE html><html dir="rtl"><head><meta charset="UTF-8">{style}</head><body>{html}</body></html>'


class PdfService:
    """PDFShift client."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None, transport=None):
        self.api_key = api_key if api_key is not None else os.getenv("PDFSHIFT_API_KEY")
        self.api_url = api_url or PDFSHIFT_API_URL
        self._transport = transport

    async def render_pdf(self, html: str, css: str = "") -> bytes:
        if not html:
            raise ValueError("Missing HTML")
        if not self.api_key:
            raise PdfRenderError("PDF generation is not configured (PDFSHIFT_API_KEY)", status_code=503)

        payload = {
            "source": build_pdf_source(html, css),
            "landscape": False,
            "use_print": False,
            "margin": PAGE_MARGINS,
        }
        headers = {"X-API-Key": self.api_key, "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=PDF_TIMEOUT_SECONDS) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error("PDFShift request timed out")
            raise PdfRenderError("PDF generation timed out")
        except httpx.HTTPError as e:
            logger.error(f"PDFShift request failed: {e}")
            raise PdfRenderError(f"PDF generation failed: {e}")

        if response.status_code != 200:
            logger.error(f"PDFShift API error {response.status_code}: {response.text[:500]}")
            raise PdfRenderError(f"PDF generation failed: PDFShift returned {response.status_code}")

        logger.info(f"PDF rendered ({len(response.content)} bytes)")
        return response.content


pdf_service = PdfService()
