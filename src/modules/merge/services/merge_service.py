import logging
import time
import uuid
from datetime import datetime
from typing import Optional, Sequence

from config import Settings
from modules.common.errors import BlobExistsError, SizeLimitError, ValidationError
from modules.merge.models.merge_session import MergeResult, StagedBlob
from modules.merge.services.merge_engine import MergeEngine
from modules.merge.services.session_store import StagingSessionStore
from modules.storage.services.blob_store import BlobStore
from modules.storage.services.paths import disambiguate_path, staged_source_path

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def new_result_id() -> str:
    return f"merge_{uuid.uuid4().hex}"


class MergeService:

    def __init__(self, blob_store: BlobStore, session_store: StagingSessionStore,
                 engine: MergeEngine, settings: Settings):
        self.blob_store = blob_store
        self.session_store = session_store
        self.engine = engine
        self.settings = settings

    def validate_source(self, file_name: str, size: int, content_type: Optional[str]) -> None:
        if size <= 0:
            raise ValidationError(f"El archivo {file_name} está vacío")
        if content_type and content_type != PDF_CONTENT_TYPE:
            raise ValidationError(f"El archivo {file_name} no es un PDF válido")
        if size > self.settings.max_source_bytes:
            raise SizeLimitError(
                f"El archivo {file_name} excede el tamaño máximo de "
                f"{self.settings.max_source_bytes // (1024 * 1024)} MB"
            )

    def stage_source(self, session_id: str, file_name: str, data: bytes,
                     content_type: Optional[str] = PDF_CONTENT_TYPE) -> StagedBlob:
        """Staging directo de un archivo pequeño (sin upload resumible)."""
        self.validate_source(file_name, len(data), content_type)
        path = staged_source_path(session_id, file_name)
        try:
            self.blob_store.upload(path, data, PDF_CONTENT_TYPE)
        except BlobExistsError:
            path = disambiguate_path(path)
            self.blob_store.upload(path, data, PDF_CONTENT_TYPE)
        return self.record_staged(session_id, path, len(data), PDF_CONTENT_TYPE, file_name)

    def record_staged(self, session_id: str, path: str, size: int,
                      content_type: str, file_name: Optional[str] = None) -> StagedBlob:
        blob = StagedBlob(
            session_id=session_id,
            relative_path=path,
            size_bytes=size,
            content_type=content_type,
            created_at=datetime.utcnow(),
            file_name=file_name,
        )
        self.session_store.put(session_id, blob)
        logger.info("Staged %s in session %s (%d bytes)", path, session_id, size)
        return blob

    def validate_request(self, source_paths: Sequence[str]) -> None:
        count = len(source_paths)
        if count < self.settings.merge_min_files:
            raise ValidationError(
                f"Se requieren al menos {self.settings.merge_min_files} archivos para fusionar"
            )
        if count > self.settings.merge_max_files:
            raise ValidationError(f"Máximo {self.settings.merge_max_files} archivos permitidos")

    def merge(self, session_id: str, source_paths: Sequence[str], output_name: Optional[str] = None,
              rotations: Optional[dict] = None) -> dict:
        self.validate_request(source_paths)

        session = self.session_store.require(session_id)
        staged = []
        for path in source_paths:
            blob = session.find_blob(path)
            if blob is None:
                raise ValidationError(f"El archivo {path} no pertenece a la sesión {session_id}")
            staged.append(blob)

        total = sum(blob.size_bytes for blob in staged)
        if total > self.engine.max_total_bytes:
            raise SizeLimitError(
                f"El tamaño combinado ({total} bytes) excede el máximo de "
                f"{self.engine.max_total_bytes} bytes"
            )

        output_name = output_name or f"merged-document-{int(time.time() * 1000)}.pdf"
        sources = [(blob.relative_path, self.blob_store.download(blob.relative_path)) for blob in staged]
        output = self.engine.merge(sources, output_name, rotations)

        result = MergeResult(
            result_id=new_result_id(),
            data=output.data,
            total_pages=output.total_pages,
            output_name=output_name,
            source_paths=tuple(source_paths),
            compression_info=output.compression_info,
            created_at=datetime.utcnow(),
        )
        self.session_store.store_merge_result(session_id, result)

        return {
            "success": True,
            "message": f"{len(staged)} archivos procesados exitosamente",
            "totalPages": result.total_pages,
            "fileSize": len(result.data),
            "tempResultId": result.result_id,
            "compressionInfo": result.compression_info,
            "tempFileName": output_name,
        }

    def preview(self, result_id: str) -> MergeResult:
        return self.session_store.get_merge_result(result_id)

    def discard(self, result_id: str) -> None:
        self.session_store.discard_merge_result(result_id)
        logger.info("Merge result %s discarded", result_id)


def remove_staged_blobs(blob_store: BlobStore, blobs: Sequence[StagedBlob]) -> None:
    """Borra los blobs de staging de una sesión; los fallos solo se registran."""
    paths = [blob.relative_path for blob in blobs]
    if not paths:
        return
    try:
        blob_store.remove(paths)
    except Exception:
        logger.warning("Could not remove staged blobs %s", paths, exc_info=True)
