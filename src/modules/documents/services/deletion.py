import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from modules.common.errors import (
    DeletionAbortedError, FatalError, NotFoundError, PartialFailureWarning,
)
from modules.documents.models import (
    Document, DocumentAnnotation, DocumentSignature, Request, SignatureMapping,
    SignatureMappingTemplate, SigningRequest,
)
from modules.storage.services.blob_store import BlobStore
from modules.storage.services.paths import resolve_bucket_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dependent:
    """
    Una entidad que referencia al documento.

    With ``through`` set, rows are matched by ``foreign_key`` against the ids
    of ``through`` rows whose ``document_id`` is the document.
    """
    model: type
    foreign_key: str
    critical: bool = True
    through: Optional[type] = None

    @property
    def name(self) -> str:
        return self.model.__tablename__


# Orden hijos -> padres; agregar un dependiente es agregar una entrada
DOCUMENT_DEPENDENCIES = (
    Dependent(SignatureMappingTemplate, "document_mapping_id", through=SignatureMapping),
    Dependent(SignatureMapping, "document_id"),
    Dependent(SigningRequest, "document_id"),
    Dependent(DocumentSignature, "document_id"),
    Dependent(DocumentAnnotation, "document_id", critical=False),
    Dependent(Request, "document_id"),
)


@dataclass
class DeletionResult:
    document_id: int
    warnings: list = field(default_factory=list)
    removed: dict = field(default_factory=dict)


class DeletionOrchestrator:
    """
    Borrado en cascada, en orden y de mejor esfuerzo, de un documento.

    Each step is its own transaction and runs exactly once. Failures of
    non-critical steps (annotations, blob removal) become warnings. A failed
    critical dependent stops the walk with ``DeletionAbortedError`` (503)
    before the blob or the document row is touched, so the delete can be
    retried. Only a failure deleting the document row itself raises
    ``FatalError`` (500).
    """

    def __init__(self, blob_store: BlobStore, bucket: str,
                 dependencies: tuple = DOCUMENT_DEPENDENCIES):
        self.blob_store = blob_store
        self.bucket = bucket
        self.dependencies = dependencies

    def delete_document(self, session: Session, document_id: int) -> DeletionResult:
        document = session.get(Document, document_id)
        if document is None:
            raise NotFoundError(f"Documento {document_id} no encontrado")
        file_path = document.file_path

        result = DeletionResult(document_id=document_id)
        for dependent in self.dependencies:
            try:
                result.removed[dependent.name] = self._delete_dependent(session, dependent, document_id)
            except Exception as exc:
                session.rollback()
                if not dependent.critical:
                    self._warn(result, f"No se pudieron eliminar {dependent.name}: {exc}")
                    continue
                logger.error("Deleting %s for document %s failed", dependent.name,
                             document_id, exc_info=True)
                raise DeletionAbortedError(
                    f"Error eliminando {dependent.name} del documento {document_id}: {exc}",
                    dependent.name,
                ) from exc

        if file_path:
            self._remove_blob(result, file_path)

        try:
            session.execute(delete(Document).where(Document.id == document_id))
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("Deleting document row %s failed", document_id, exc_info=True)
            raise FatalError(f"Error eliminando el documento {document_id}: {exc}") from exc

        logger.info("Document %s deleted (%d warnings)", document_id, len(result.warnings))
        return result

    def _delete_dependent(self, session: Session, dependent: Dependent, document_id: int) -> int:
        column = getattr(dependent.model, dependent.foreign_key)
        if dependent.through is not None:
            parent_ids = session.scalars(
                select(dependent.through.id).where(dependent.through.document_id == document_id)
            ).all()
            if not parent_ids:
                return 0
            statement = delete(dependent.model).where(column.in_(parent_ids))
        else:
            statement = delete(dependent.model).where(column == document_id)
        removed = session.execute(statement).rowcount
        session.commit()
        logger.info("Removed %s %s rows for document %s", removed, dependent.name, document_id)
        return removed

    def _remove_blob(self, result: DeletionResult, file_path: str) -> None:
        path = resolve_bucket_path(file_path, self.bucket)
        try:
            removed = self.blob_store.remove([path])
        except Exception as exc:
            self._warn(result, f"No se pudo eliminar el archivo {path}: {exc}")
            return
        if not removed:
            self._warn(result, f"El archivo {path} no existía en el storage")

    @staticmethod
    def _warn(result: DeletionResult, message: str) -> None:
        warning = PartialFailureWarning(message)
        logger.warning("%s", warning)
        result.warnings.append(str(warning))
