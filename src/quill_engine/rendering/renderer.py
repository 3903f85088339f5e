"""Overlay signed field values onto the source PDF and append a certificate page.

Field geometry is stored as percentages of the page with the origin at the
top-left corner; reportlab draws from the bottom-left, so y is flipped.
"""

import asyncio
import base64
import binascii
import re
import struct
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Optional, Protocol

from PIL import Image
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from quill_engine.documents.states import IMAGE_FIELD_TYPES

DATA_URI_RE = re.compile(r"^data:image/(png|jpeg|jpg|gif|webp);base64,(.+)$", re.DOTALL)
CERTIFICATE_AUDIT_LINES = 10
IMAGE_FORMATS = {"png": "PNG", "jpeg": "JPEG", "jpg": "JPEG", "gif": "GIF", "webp": "WEBP"}


class RenderError(Exception):
    """Raised when a signed PDF cannot be produced."""


@dataclass
class RenderField:
    field_type: str
    page_number: int
    x_position: float
    y_position: float
    width: float
    height: float
    value: Optional[str] = None
    font_size: Optional[int] = None


@dataclass
class RenderSigner:
    name: Optional[str]
    email: str
    signed_at: Optional[datetime] = None


@dataclass
class RenderAuditLine:
    event_type: str
    created_at: datetime
    description: Optional[str] = None


@dataclass
class RenderRequest:
    """Everything the renderer needs, detached from any database session."""
    title: str
    source_pdf: bytes
    fields: list[RenderField] = field(default_factory=list)
    signers: list[RenderSigner] = field(default_factory=list)
    audit: list[RenderAuditLine] = field(default_factory=list)
    document_number: Optional[str] = None
    original_sha256: Optional[str] = None


class Renderer(Protocol):
    async def render(self, request: RenderRequest) -> bytes: ...


def decode_image_value(value: str) -> bytes | None:
    """Return the raw image bytes of a data URI value, or None if it is not one.

    The payload has to decode to an image whose format matches the declared
    subtype; anything else is rejected before it can reach the renderer.
    """
    match = DATA_URI_RE.match(value or "")
    if not match:
        return None
    try:
        raw = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        return None
    try:
        with Image.open(BytesIO(raw)) as img:
            img.verify()
            detected = img.format
    except (OSError, SyntaxError, ValueError, EOFError, struct.error, Image.DecompressionBombError):
        return None
    if detected != IMAGE_FORMATS[match.group(1)]:
        return None
    return raw


def _pct(percent: float, total: float) -> float:
    return (float(percent) / 100.0) * total


class PdfRenderer:
    """pypdf + reportlab implementation of the renderer interface."""

    async def render(self, request: RenderRequest) -> bytes:
        return await asyncio.to_thread(self.render_sync, request)

    def render_sync(self, request: RenderRequest) -> bytes:
        try:
            reader = PdfReader(BytesIO(request.source_pdf))
        except (PdfReadError, ValueError) as exc:
            raise RenderError(f"Unreadable source PDF: {exc}") from exc

        writer = PdfWriter()
        for index, page in enumerate(reader.pages, start=1):
            page_fields = [f for f in request.fields if f.page_number == index and f.value]
            if page_fields:
                box = page.mediabox
                overlay = self._make_overlay(float(box.width), float(box.height), page_fields)
                page.merge_page(PdfReader(BytesIO(overlay)).pages[0])
            writer.add_page(page)

        for page in PdfReader(BytesIO(self._make_certificate(request))).pages:
            writer.add_page(page)

        out = BytesIO()
        writer.write(out)
        return out.getvalue()

    @staticmethod
    def _make_overlay(page_w: float, page_h: float, fields: list[RenderField]) -> bytes:
        buf = BytesIO()
        c = canvas.Canvas(buf, pagesize=(page_w, page_h))
        c.setFillColorRGB(0.1, 0.1, 0.1)

        for f in fields:
            box_w = _pct(f.width, page_w)
            box_h = _pct(f.height, page_h)
            x = _pct(f.x_position, page_w)
            y = page_h - _pct(f.y_position, page_h) - box_h

            if f.field_type in IMAGE_FIELD_TYPES:
                raw = decode_image_value(f.value)
                if raw is None:
                    continue
                img = Image.open(BytesIO(raw)).convert("RGBA")
                c.drawImage(ImageReader(img), x, y, width=box_w, height=box_h, mask="auto")
            elif f.field_type == "checkbox":
                if str(f.value).lower() == "true":
                    c.setFont("Helvetica-Bold", max(6, min(box_h, 18)))
                    c.drawString(x + 2, y + 2, "X")
            else:
                c.setFont("Helvetica", f.font_size or max(6, min(12, box_h - 2)))
                c.drawString(x + 2, y + 2, str(f.value))

        c.save()
        return buf.getvalue()

    @staticmethod
    def _make_certificate(request: RenderRequest) -> bytes:
        buf = BytesIO()
        width, height = letter
        c = canvas.Canvas(buf, pagesize=letter)
        y = height - 60
        gap = 16

        c.setFont("Helvetica-Bold", 18)
        c.drawString(40, y, "Certificate of Completion")
        y -= gap * 2

        c.setFont("Helvetica", 12)
        c.drawString(40, y, f"Document: {request.title or 'Untitled'}")
        y -= gap
        if request.document_number:
            c.drawString(40, y, f"Document ID: {request.document_number}")
            y -= gap
        if request.original_sha256:
            c.setFont("Helvetica", 9)
            c.drawString(40, y, f"Original SHA-256: {request.original_sha256}")
            y -= gap

        y -= gap
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, "Recipients")
        y -= gap
        for signer in request.signers:
            if y < 60 + gap:
                c.showPage()
                y = height - 60
            signed_at = signer.signed_at.isoformat() if signer.signed_at else "N/A"
            c.setFont("Helvetica", 10)
            c.drawString(40, y, f"- {signer.name or signer.email} ({signer.email})")
            y -= gap
            c.setFont("Helvetica", 9)
            c.drawString(50, y, f"Signed at: {signed_at}")
            y -= gap

        y -= gap
        if y < 60 + gap * 2:
            c.showPage()
            y = height - 60
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, "Audit Log")
        y -= gap
        c.setFont("Helvetica", 9)
        for line in request.audit[-CERTIFICATE_AUDIT_LINES:]:
            if y < 60:
                break
            c.drawString(
                40, y,
                f"{line.created_at.isoformat()} - {line.event_type} - {line.description or ''}",
            )
            y -= gap

        c.save()
        return buf.getvalue()
