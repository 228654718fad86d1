from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from typing import Optional
from modules.auth.controllers.auth_controller import get_current_user
from modules.common.dependencies import Components, get_components
from modules.common.errors import ValidationError
from modules.storage.services.chunked_transport import CHUNK_CONTENT_TYPE, TUS_VERSION
from modules.storage.services.upload_service import UploadState, parse_metadata

router = APIRouter(
    prefix="/uploads",
    tags=["uploads"],
    dependencies=[Depends(get_current_user)],
)


def _status_headers(state: UploadState) -> dict:
    headers = {
        "Tus-Resumable": TUS_VERSION,
        "Upload-Offset": str(state.offset),
        "Upload-Length": str(state.length),
        "Cache-Control": "no-store",
    }
    if state.completed_path:
        headers["Upload-Path"] = state.completed_path
    return headers


@router.post("", status_code=201)
def create_upload(
    request: Request,
    upload_length: int = Header(...),
    upload_metadata: Optional[str] = Header(None),
    components: Components = Depends(get_components),
):
    state = components.upload_service.create(upload_length, parse_metadata(upload_metadata))
    location = f"{str(request.url).rstrip('/')}/{state.upload_id}"
    return Response(status_code=201, headers={"Location": location, "Tus-Resumable": TUS_VERSION})


@router.head("/{upload_id}")
def upload_offset(upload_id: str, components: Components = Depends(get_components)):
    state = components.upload_service.status(upload_id)
    return Response(status_code=200, headers=_status_headers(state))


@router.patch("/{upload_id}")
async def append_chunk(
    upload_id: str,
    request: Request,
    upload_offset: int = Header(...),
    content_type: Optional[str] = Header(None),
    components: Components = Depends(get_components),
):
    if content_type != CHUNK_CONTENT_TYPE:
        raise HTTPException(415, f"Content-Type debe ser {CHUNK_CONTENT_TYPE}")
    data = await request.body()
    if not data:
        raise ValidationError("Chunk vacío")
    state = await run_in_threadpool(components.upload_service.append, upload_id, upload_offset, data)
    return Response(status_code=204, headers=_status_headers(state))


@router.delete("/{upload_id}", status_code=204)
def abort_upload(upload_id: str, components: Components = Depends(get_components)):
    components.upload_service.abort(upload_id)
    return Response(status_code=204, headers={"Tus-Resumable": TUS_VERSION})
