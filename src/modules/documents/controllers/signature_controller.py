# src/modules/documents/controllers/signature_controller.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.auth.services.auth_service import AuthenticatedUser
from modules.documents.models import SignatureMapping
from modules.documents.schemas.geometry import (
    AnnotationsRequest, SignatureMappingRequest, SignatureMappingResponse, SignatureRequest,
    TemplateRequest,
)
from modules.documents.services.mapping_service import (
    AnnotationService, MappingService, SignatureService, load_fields,
)

router = APIRouter(
    tags=["signatures"],
    dependencies=[Depends(get_current_user)],
)


def _mapping_response(mapping: SignatureMapping) -> SignatureMappingResponse:
    return SignatureMappingResponse(
        id=mapping.id,
        documentId=mapping.document_id,
        fields=load_fields(mapping),
        isTemplate=mapping.is_template,
    )


@router.put("/{document_id}/signature-mapping", response_model=SignatureMappingResponse,
            response_model_by_alias=True)
def save_signature_mapping(
    document_id: int,
    body: SignatureMappingRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Guarda el mapeo de campos de firma. Las coordenadas absolutas se
    convierten a relativas aquí y solo la forma relativa se persiste.
    """
    mapping = MappingService.save_mapping(db, document_id, body.fields, body.isTemplate, current_user.id)
    return _mapping_response(mapping)


@router.get("/{document_id}/signature-mapping", response_model=SignatureMappingResponse,
            response_model_by_alias=True)
def get_signature_mapping(document_id: int, db: Session = Depends(get_db)):
    return _mapping_response(MappingService.get_mapping(db, document_id))


@router.post("/signature-mappings/{mapping_id}/templates")
def create_mapping_template(
    mapping_id: int,
    body: TemplateRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    template = MappingService.create_template(db, mapping_id, body.name, current_user.id)
    return {"success": True, "templateId": template.id, "name": template.name}


@router.post("/{document_id}/signatures")
def add_signature(
    document_id: int,
    body: SignatureRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    sig = SignatureService.add_signature(db, document_id, body.field, body.imageData,
                                         body.source, current_user.id)
    return {
        "message": "Firma añadida",
        "signatureId": sig.id,
        "page": sig.page,
        "signerIndex": sig.signer_index,
        "timestamp": sig.ts,
    }


@router.put("/{document_id}/annotations")
def save_annotations(
    document_id: int,
    body: AnnotationsRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    row = AnnotationService.save_annotations(db, document_id, body.annotations, current_user.id)
    return {"success": True, "annotationId": row.id, "count": len(row.annotations or [])}
