import logging
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from modules.common.errors import ServiceError
from modules.documents.models.document import Document
from modules.documents.services.deletion import DeletionOrchestrator

logger = logging.getLogger(__name__)


def purge_stale_temporary_documents(session: Session, orchestrator: DeletionOrchestrator,
                                    max_age: timedelta = timedelta(hours=24)) -> list[int]:
    """Elimina los documentos temporales nunca promovidos."""
    cutoff_date = datetime.utcnow() - max_age

    document_ids = [
        doc_id for (doc_id,) in session.query(Document.id).filter(
            Document.temporary.is_(True),
            Document.created_at <= cutoff_date
        ).all()
    ]

    purged = []
    for doc_id in document_ids:
        try:
            result = orchestrator.delete_document(session, doc_id)
        except ServiceError as e:
            logger.error("Error purging temporary document %s: %s", doc_id, e.message)
            continue
        purged.append(doc_id)
        for warning in result.warnings:
            logger.warning("Temporary document %s: %s", doc_id, warning)

    if purged:
        logger.info("Purged %d stale temporary documents", len(purged))
    return purged
