import logging
from typing import Optional

from sqlalchemy.orm import Session

from modules.common.errors import NotFoundError, ValidationError
from modules.documents.models.document import Document
from modules.documents.services.coordinates import normalize_rotation

logger = logging.getLogger(__name__)

ALLOWED_STEPS = (90, 180, 270, -90)


class RotationService:

    @staticmethod
    def rotate(session: Session, document_id: int, degrees: int,
               pages: Optional[list[int]] = None) -> Document:
        """
        Rota el documento completo o solo las páginas indicadas.

        Only the stored rotation changes; the PDF bytes stay untouched and
        consumers apply the rotation when rendering.
        """
        if degrees not in ALLOWED_STEPS:
            raise ValidationError(f"Rotación inválida: {degrees}")

        document = session.get(Document, document_id)
        if not document:
            raise NotFoundError(f"Documento {document_id} no encontrado")

        page_rotations = {str(k): int(v) for k, v in (document.page_rotations or {}).items()}
        if pages is None:
            document.rotation = normalize_rotation((document.rotation or 0) + degrees)
            page_rotations = {k: normalize_rotation(v + degrees) for k, v in page_rotations.items()}
        else:
            for page in pages:
                if page < 1 or (document.page_count and page > document.page_count):
                    raise ValidationError(f"Página {page} fuera de rango")
                current = page_rotations.get(str(page), document.rotation or 0)
                page_rotations[str(page)] = normalize_rotation(current + degrees)
        document.page_rotations = page_rotations
        session.commit()
        session.refresh(document)

        logger.info("Document %s rotated %+d° (pages=%s) -> %s°", document_id, degrees,
                    pages or "all", document.rotation)
        return document
