import logging
from typing import Any, Optional

import pydantic
from sqlalchemy.orm import Session

from modules.common.errors import NotFoundError, ValidationError
from modules.documents.models import (
    Document, DocumentAnnotation, DocumentSignature, SignatureMapping, SignatureMappingTemplate,
)
from modules.documents.schemas.geometry import SignatureField, SignatureFieldInput

logger = logging.getLogger(__name__)


def _require_document(session: Session, document_id: int) -> Document:
    document = session.get(Document, document_id)
    if not document:
        raise NotFoundError(f"Documento {document_id} no encontrado")
    return document


def normalize_field(field_input: SignatureFieldInput, page_count: Optional[int] = None) -> SignatureField:
    try:
        field = field_input.normalized()
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Geometría inválida: {exc.errors()[0]['msg']}") from exc
    if page_count and field.page > page_count:
        raise ValidationError(f"Página {field.page} fuera de rango")
    return field


def load_fields(mapping: SignatureMapping) -> list[SignatureField]:
    return [SignatureField.model_validate(record) for record in mapping.fields or []]


class MappingService:

    @staticmethod
    def save_mapping(session: Session, document_id: int, fields: list[SignatureFieldInput],
                     is_template: bool = False, user_id: Optional[str] = None) -> SignatureMapping:
        """Guarda (reemplaza) el mapeo de firmas del documento, siempre en forma relativa."""
        document = _require_document(session, document_id)
        normalized = [normalize_field(f, document.page_count) for f in fields]

        mapping = (
            session.query(SignatureMapping)
            .filter(SignatureMapping.document_id == document_id)
            .order_by(SignatureMapping.id.desc())
            .first()
        )
        if mapping is None:
            mapping = SignatureMapping(document_id=document_id, created_by=user_id)
            session.add(mapping)
        mapping.fields = [f.to_record() for f in normalized]
        mapping.is_template = is_template
        session.commit()
        session.refresh(mapping)
        logger.info("Signature mapping %s saved for document %s (%d fields)",
                    mapping.id, document_id, len(normalized))
        return mapping

    @staticmethod
    def get_mapping(session: Session, document_id: int) -> SignatureMapping:
        _require_document(session, document_id)
        mapping = (
            session.query(SignatureMapping)
            .filter(SignatureMapping.document_id == document_id)
            .order_by(SignatureMapping.id.desc())
            .first()
        )
        if mapping is None:
            raise NotFoundError(f"El documento {document_id} no tiene mapeo de firmas")
        return mapping

    @staticmethod
    def create_template(session: Session, mapping_id: int, name: str,
                        user_id: Optional[str] = None) -> SignatureMappingTemplate:
        mapping = session.get(SignatureMapping, mapping_id)
        if not mapping:
            raise NotFoundError(f"Mapeo {mapping_id} no encontrado")
        template = SignatureMappingTemplate(name=name, document_mapping_id=mapping_id, created_by=user_id)
        session.add(template)
        session.commit()
        session.refresh(template)
        return template


class SignatureService:

    @staticmethod
    def add_signature(session: Session, document_id: int, field_input: SignatureFieldInput,
                      image_data: Optional[str] = None, source: str = "canvas",
                      user_id: Optional[str] = None) -> DocumentSignature:
        document = _require_document(session, document_id)
        field = normalize_field(field_input, document.page_count)
        signature = DocumentSignature(
            document_id=document_id,
            page=field.page,
            relative_x=field.relative_x,
            relative_y=field.relative_y,
            relative_width=field.relative_width,
            relative_height=field.relative_height,
            signer_index=field.signer_index,
            signature_data=image_data,
            signature_source=source,
            created_by=user_id,
        )
        session.add(signature)
        session.commit()
        session.refresh(signature)
        return signature


class AnnotationService:

    @staticmethod
    def save_annotations(session: Session, document_id: int, annotations: list[Any],
                         user_id: Optional[str] = None) -> DocumentAnnotation:
        _require_document(session, document_id)
        row = (
            session.query(DocumentAnnotation)
            .filter(DocumentAnnotation.document_id == document_id)
            .first()
        )
        if row is None:
            row = DocumentAnnotation(document_id=document_id, created_by=user_id)
            session.add(row)
        row.annotations = annotations
        session.commit()
        session.refresh(row)
        return row
