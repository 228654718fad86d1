from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.auth.services.auth_service import AuthenticatedUser
from modules.common.dependencies import Components, get_components
from modules.common.errors import NotFoundError
from modules.documents.models import Document
from modules.documents.schemas.geometry import PromoteDocumentRequest, RotateRequest
from modules.documents.services.rotation_service import RotationService
from modules.storage.services.paths import resolve_bucket_path

router = APIRouter(
    tags=["documents"],
    dependencies=[Depends(get_current_user)],
)


def _document_response(document: Document, components: Components) -> dict:
    path = resolve_bucket_path(document.file_path, components.settings.storage_bucket)
    return {
        "id": document.id,
        "fileName": document.file_name,
        "filePath": document.file_path,
        "fileSize": document.file_size,
        "fileType": document.file_type,
        "pageCount": document.page_count,
        "documentType": document.document_type,
        "metadata": document.files_metadata,
        "rotation": document.rotation,
        "pageRotations": document.page_rotations or {},
        "temporary": document.temporary,
        "createdBy": document.created_by,
        "createdAt": document.created_at.isoformat() if document.created_at else None,
        "documentUrl": components.blob_store.public_url(path),
    }


@router.post("/temporary")
async def upload_temporary_document(
    sessionId: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    components: Components = Depends(get_components),
):
    """Sube un documento temporal para previsualizarlo antes de confirmarlo."""
    contents = await file.read()
    file_name = file.filename or "document.pdf"
    components.merge_service.validate_source(file_name, len(contents), file.content_type)
    document = await run_in_threadpool(
        components.promotion_service.create_temporary_document,
        db, sessionId, file_name, contents, current_user,
    )
    return {"success": True, "document": _document_response(document, components)}


@router.post("/{document_id}/promote")
def promote_temporary_document(
    document_id: int,
    body: PromoteDocumentRequest,
    db: Session = Depends(get_db),
    components: Components = Depends(get_components),
):
    return components.promotion_service.promote_temporary_document(db, document_id, body.finalFileName)


@router.get("/{document_id}")
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    components: Components = Depends(get_components),
):
    document = db.get(Document, document_id)
    if not document:
        raise NotFoundError(f"Documento {document_id} no encontrado")
    return _document_response(document, components)


@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    components: Components = Depends(get_components),
):
    """
    Elimina el documento y todo lo que lo referencia.
    Los fallos no críticos se devuelven como warnings.
    """
    result = components.deletion.delete_document(db, document_id)
    return {
        "success": True,
        "message": "Documento eliminado",
        "warnings": result.warnings,
    }


@router.post("/{document_id}/rotate")
def rotate_document(document_id: int, body: RotateRequest, db: Session = Depends(get_db)):
    document = RotationService.rotate(db, document_id, body.rotation, body.pages)
    return {
        "success": True,
        "rotation": document.rotation,
        "pageRotations": document.page_rotations or {},
    }


@router.get("/{document_id}/print")
def print_document(
    document_id: int,
    db: Session = Depends(get_db),
    components: Components = Depends(get_components),
):
    data = components.print_service.render_document(db, document_id)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="documento-{document_id}.pdf"'},
    )
