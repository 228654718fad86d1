from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.auth.services.auth_service import AuthenticatedUser
from modules.common.dependencies import Components, get_components
from modules.merge.models.merge_session import MergeSession, StagedBlob
from modules.merge.schemas.merge_schemas import (
    MergeRequest, MergeSessionResponse, PromoteMergeRequest, StagedBlobResponse,
)

router = APIRouter(
    prefix="/merge",
    tags=["merge"],
    dependencies=[Depends(get_current_user)],
)


def _blob_response(blob: StagedBlob) -> StagedBlobResponse:
    return StagedBlobResponse(
        path=blob.relative_path,
        fileName=blob.file_name,
        sizeBytes=blob.size_bytes,
        contentType=blob.content_type,
        createdAt=blob.created_at,
    )


def _session_response(session: MergeSession) -> MergeSessionResponse:
    result = session.merge_result
    return MergeSessionResponse(
        sessionId=session.session_id,
        state=session.state.value,
        createdAt=session.created_at,
        expiresAt=session.expires_at,
        files=[_blob_response(b) for b in session.staged_blobs],
        tempResultId=result.result_id if result else None,
        totalPages=result.total_pages if result else None,
    )


@router.post("/sessions/{session_id}/files", response_model=StagedBlobResponse)
async def stage_file(
    session_id: str,
    file: UploadFile = File(...),
    components: Components = Depends(get_components),
):
    """Staging directo de un PDF pequeño, sin upload resumible."""
    contents = await file.read()
    blob = await run_in_threadpool(components.merge_service.stage_source, session_id,
                                   file.filename or "document.pdf", contents, file.content_type)
    return _blob_response(blob)


@router.get("/sessions/{session_id}", response_model=MergeSessionResponse)
def get_session(session_id: str, components: Components = Depends(get_components)):
    return _session_response(components.session_store.require(session_id))


@router.post("")
def merge_files(body: MergeRequest, components: Components = Depends(get_components)):
    return components.merge_service.merge(body.sessionId, body.sourcePaths, body.outputName,
                                          body.rotations)


@router.get("/results/{result_id}")
def preview_result(result_id: str, components: Components = Depends(get_components)):
    result = components.merge_service.preview(result_id)
    return Response(
        content=result.data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{result.output_name}"'},
    )


@router.delete("/results/{result_id}")
def discard_result(result_id: str, components: Components = Depends(get_components)):
    components.merge_service.discard(result_id)
    return {"success": True}


@router.post("/promote")
def promote_result(
    body: PromoteMergeRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    components: Components = Depends(get_components),
):
    return components.promotion_service.promote_merge_result(
        db, body.tempResultId, body.finalFileName, current_user
    )
