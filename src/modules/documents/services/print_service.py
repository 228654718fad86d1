import base64
import binascii
import io
import logging

from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from modules.common.errors import NotFoundError
from modules.documents.models import Document, DocumentSignature, SignatureMapping
from modules.documents.services.coordinates import (
    Rect, intrinsic_page_size, to_absolute, to_pdf_space,
)
from modules.documents.services.mapping_service import load_fields
from modules.merge.services.merge_engine import load_pdf, page_rotation, set_page_rotation
from modules.storage.services.blob_store import BlobStore
from modules.storage.services.paths import resolve_bucket_path

logger = logging.getLogger(__name__)


def decode_image(data: str) -> bytes:
    if data.startswith("data:"):
        data = data.split(",", 1)[1]
    return base64.b64decode(data, validate=True)


class PrintService:
    """
    Aplana firmas y campos sobre el PDF para impresión.

    Geometry comes from the relative records and the page's media box only;
    the stored rotation is set on /Rotate afterwards, so the overlay rotates
    together with the page content.
    """

    def __init__(self, blob_store: BlobStore, bucket: str):
        self.blob_store = blob_store
        self.bucket = bucket

    def render_document(self, session: Session, document_id: int) -> bytes:
        document = session.get(Document, document_id)
        if not document:
            raise NotFoundError(f"Documento {document_id} no encontrado")
        data = self.blob_store.download(resolve_bucket_path(document.file_path, self.bucket))
        mapping = (
            session.query(SignatureMapping)
            .filter(SignatureMapping.document_id == document_id)
            .order_by(SignatureMapping.id.desc())
            .first()
        )
        fields = load_fields(mapping) if mapping else []
        return self.render(document, data, list(document.signatures), fields)

    def render(self, document: Document, pdf_bytes: bytes,
               signatures: list[DocumentSignature], fields: list) -> bytes:
        reader = load_pdf(document.file_name, pdf_bytes)
        writer = PdfWriter()

        for index, page in enumerate(reader.pages):
            number = index + 1
            page_signatures = [s for s in signatures if s.page == number]
            signed = {s.signer_index for s in page_signatures}
            pending = [f for f in fields if f.page == number and f.signer_index not in signed]
            if page_signatures or pending:
                page.merge_page(self._overlay(page, page_signatures, pending))
            set_page_rotation(page, page_rotation(page) + document.rotation_for(number))
            writer.add_page(page)

        buffer = io.BytesIO()
        writer.write(buffer)
        logger.info("Document %s rendered for print (%d signatures, %d fields)",
                    document.id, len(signatures), len(fields))
        return buffer.getvalue()

    def _overlay(self, page, signatures, pending):
        size = intrinsic_page_size(page)
        box = page.mediabox
        origin_x = min(float(box[0]), float(box[2]))
        origin_y = min(float(box[1]), float(box[3]))

        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=(origin_x + size.width, origin_y + size.height))

        def place(relative: Rect) -> Rect:
            rect = to_pdf_space(to_absolute(relative, size), size)
            return Rect(rect.x + origin_x, rect.y + origin_y, rect.width, rect.height)

        for signature in signatures:
            rect = place(Rect(signature.relative_x, signature.relative_y,
                              signature.relative_width, signature.relative_height))
            if signature.signature_data:
                try:
                    image = ImageReader(io.BytesIO(decode_image(signature.signature_data)))
                    c.drawImage(image, rect.x, rect.y, rect.width, rect.height,
                                mask="auto", preserveAspectRatio=True, anchor="c")
                    continue
                except (binascii.Error, ValueError, OSError):
                    logger.warning("Signature %s has unreadable image data", signature.id)
            c.setStrokeColorRGB(0.1, 0.1, 0.1)
            c.rect(rect.x, rect.y, rect.width, rect.height)
            c.setFont("Helvetica", 8)
            c.drawString(rect.x + 2, rect.y + 2, f"Firmado ({signature.signature_source})")

        for field in pending:
            rect = place(field.rect)
            c.setDash(3, 2)
            c.setStrokeColorRGB(0.2, 0.3, 0.8)
            c.rect(rect.x, rect.y, rect.width, rect.height)
            c.setFont("Helvetica", 8)
            c.drawString(rect.x + 2, rect.y + 2, f"Firma {field.signer_index + 1}")
            c.setDash()

        c.showPage()
        c.save()
        buffer.seek(0)
        return PdfReader(buffer).pages[0]
