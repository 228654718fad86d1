import logging
from typing import Optional

from sqlalchemy.orm import Session

from modules.auth.services.auth_service import AuthenticatedUser
from modules.common.errors import BlobExistsError, NotFoundError, ValidationError
from modules.documents.models.document import Document
from modules.merge.models.merge_session import MergeResult, MergeSession
from modules.merge.services.merge_engine import load_pdf
from modules.merge.services.merge_service import PDF_CONTENT_TYPE, remove_staged_blobs
from modules.merge.services.session_store import StagingSessionStore
from modules.storage.services.blob_store import BlobStore
from modules.storage.services.paths import (
    TEMP_MARKER, disambiguate_path, generate_file_path, normalize_file_name, strip_temp_marker,
    temporary_document_path,
)

logger = logging.getLogger(__name__)


class PromotionService:
    """Mueve resultados temporales al storage permanente y los marca como no temporales."""

    def __init__(self, blob_store: BlobStore, session_store: StagingSessionStore):
        self.blob_store = blob_store
        self.session_store = session_store

    def _upload_once_more_on_collision(self, path: str, data: bytes) -> str:
        try:
            return self.blob_store.upload(path, data, PDF_CONTENT_TYPE)
        except BlobExistsError:
            retry_path = disambiguate_path(path)
            logger.warning("Path %s already taken, retrying as %s", path, retry_path)
            return self.blob_store.upload(retry_path, data, PDF_CONTENT_TYPE)

    def _response(self, document: Document) -> dict:
        return {
            "success": True,
            "documentId": document.id,
            "documentUrl": self.blob_store.public_url(document.file_path),
            "temporary": document.temporary,
            "message": "Documento guardado exitosamente",
        }

    def _store_merged_document(self, session: Session, merge_session: MergeSession,
                               result: MergeResult, final_name: str,
                               user: Optional[AuthenticatedUser]) -> Document:
        file_name = normalize_file_name(final_name)
        path = generate_file_path(file_name, user.id if user else None)
        path = self._upload_once_more_on_collision(path, result.data)

        document = Document(
            file_name=final_name,
            file_path=path,
            file_size=len(result.data),
            page_count=result.total_pages,
            document_type="merged_pdf",
            temporary=False,
            created_by=user.id if user else None,
            files_metadata={
                "pages": result.total_pages,
                "original_files_count": len(result.source_paths),
                "merge_session_id": merge_session.session_id,
                "compression": result.compression_info,
            },
        )
        try:
            session.add(document)
            session.commit()
        except Exception:
            session.rollback()
            self.blob_store.remove([path])
            raise
        session.refresh(document)
        return document

    def promote_merge_result(self, session: Session, result_id: str, final_name: str,
                             user: Optional[AuthenticatedUser] = None) -> dict:
        merge_session, result = self.session_store.take_merge_result(result_id)
        try:
            document = self._store_merged_document(session, merge_session, result, final_name, user)
        except Exception:
            # el resultado vuelve al store para poder reintentar con el mismo id
            self.session_store.restore_claimed(merge_session, result)
            raise

        remove_staged_blobs(self.blob_store, merge_session.staged_blobs)
        logger.info("Merge result %s promoted to document %s at %s", result_id, document.id,
                    document.file_path)
        return self._response(document)

    def create_temporary_document(self, session: Session, session_id: str, file_name: str,
                                  data: bytes, user: Optional[AuthenticatedUser] = None) -> Document:
        """Guarda un documento temporal para previsualizarlo antes de confirmarlo."""
        reader = load_pdf(file_name, data)
        path = self._upload_once_more_on_collision(temporary_document_path(session_id, file_name), data)
        document = Document(
            file_name=file_name,
            file_path=path,
            file_size=len(data),
            page_count=len(reader.pages),
            document_type="upload",
            temporary=True,
            created_by=user.id if user else None,
        )
        try:
            session.add(document)
            session.commit()
        except Exception:
            session.rollback()
            self.blob_store.remove([path])
            raise
        session.refresh(document)
        logger.info("Temporary document %s stored at %s", document.id, path)
        return document

    def promote_temporary_document(self, session: Session, document_id: int, final_name: str) -> dict:
        document = session.get(Document, document_id)
        if not document:
            raise NotFoundError(f"Documento temporal {document_id} no encontrado")
        if not document.temporary or TEMP_MARKER not in document.file_path:
            raise ValidationError(f"El documento {document_id} no es temporal")

        source = document.file_path
        destination = strip_temp_marker(source)
        try:
            self.blob_store.move(source, destination)
        except BlobExistsError:
            destination = disambiguate_path(destination)
            self.blob_store.move(source, destination)

        document.file_name = final_name
        document.file_path = destination
        document.temporary = False
        try:
            session.commit()
        except Exception:
            session.rollback()
            self.blob_store.move(destination, source)
            raise
        session.refresh(document)
        logger.info("Temporary document %s promoted: %s -> %s", document_id, source, destination)
        return self._response(document)
