from unittest.mock import patch

import pytest
from sqlalchemy import event

from database import engine
from modules.common.errors import DeletionAbortedError, FatalError, NotFoundError
from modules.documents.models import (
    Document, DocumentAnnotation, DocumentSignature, Request, SignatureMapping,
    SignatureMappingTemplate, SigningRequest,
)
from modules.documents.services.deletion import DOCUMENT_DEPENDENCIES, DeletionOrchestrator

BUCKET = "public-documents"


@pytest.fixture
def orchestrator(blob_store):
    return DeletionOrchestrator(blob_store, BUCKET)


def populate(session, document_id):
    mapping = SignatureMapping(document_id=document_id, fields=[])
    session.add(mapping)
    session.commit()
    session.add_all([
        SignatureMappingTemplate(name="t1", document_mapping_id=mapping.id),
        SigningRequest(document_id=document_id, recipient_email="ana@empresa.com"),
        DocumentSignature(document_id=document_id, page=1, relative_x=0.1, relative_y=0.1,
                          relative_width=0.2, relative_height=0.1),
        DocumentAnnotation(document_id=document_id, annotations=[{"type": "note"}]),
        Request(document_id=document_id, title="Firma contrato"),
    ])
    session.commit()


def count_rows(session, document_id):
    return {
        "mappings": session.query(SignatureMapping).filter_by(document_id=document_id).count(),
        "templates": session.query(SignatureMappingTemplate).count(),
        "signing_requests": session.query(SigningRequest).filter_by(document_id=document_id).count(),
        "signatures": session.query(DocumentSignature).filter_by(document_id=document_id).count(),
        "annotations": session.query(DocumentAnnotation).filter_by(document_id=document_id).count(),
        "requests": session.query(Request).filter_by(document_id=document_id).count(),
    }


def test_orden_de_dependencias_hijos_antes_que_padres():
    names = [d.name for d in DOCUMENT_DEPENDENCIES]
    assert names == [
        "signature_mapping_templates", "document_signature_mappings", "signing_requests",
        "document_signatures", "document_annotations", "requests",
    ]
    assert [d.name for d in DOCUMENT_DEPENDENCIES if not d.critical] == ["document_annotations"]


def test_borrado_completo_con_foreign_keys(session, orchestrator, stored_document, blob_store):
    doc = stored_document()
    doc_id = doc.id
    populate(session, doc_id)

    result = orchestrator.delete_document(session, doc_id)

    assert result.warnings == []
    session.expunge_all()
    assert session.get(Document, doc_id) is None
    assert all(v == 0 for v in count_rows(session, doc_id).values())
    assert not blob_store.exists("uploads/2024/01/01/anonymous/doc.pdf")
    assert result.removed["signature_mapping_templates"] == 1


def test_no_toca_otros_documentos(session, orchestrator, stored_document):
    doc = stored_document()
    doc_id = doc.id
    other = stored_document(path="uploads/2024/01/01/anonymous/other.pdf")
    other_id = other.id
    populate(session, doc_id)
    populate(session, other_id)

    orchestrator.delete_document(session, doc_id)

    session.expunge_all()
    assert session.get(Document, other_id) is not None
    assert count_rows(session, other_id)["templates"] == 1
    assert count_rows(session, other_id)["signatures"] == 1


def test_documento_inexistente(session, orchestrator):
    with pytest.raises(NotFoundError):
        orchestrator.delete_document(session, 999)


def test_sin_dependientes_ni_archivo(session, orchestrator, blob_store):
    doc = Document(file_name="x.pdf", file_path="x.pdf", file_size=1)
    session.add(doc)
    session.commit()
    doc_id = doc.id
    result = orchestrator.delete_document(session, doc_id)
    assert len(result.warnings) == 1
    assert "uploads/x.pdf" in result.warnings[0]
    session.expunge_all()
    assert session.get(Document, doc_id) is None


def test_error_en_anotaciones_es_warning(session, orchestrator, stored_document):
    doc = stored_document()
    doc_id = doc.id
    populate(session, doc_id)
    original = orchestrator._delete_dependent

    def failing(db, dependent, document_id):
        if dependent.model is DocumentAnnotation:
            raise RuntimeError("tabla bloqueada")
        return original(db, dependent, document_id)

    with patch.object(orchestrator, "_delete_dependent", side_effect=failing):
        result = orchestrator.delete_document(session, doc_id)

    assert len(result.warnings) == 1
    assert "document_annotations" in result.warnings[0]


def test_error_en_dependiente_critico_aborta_el_borrado(session, orchestrator, stored_document, blob_store):
    doc = stored_document()
    doc_id = doc.id
    populate(session, doc_id)
    original = orchestrator._delete_dependent

    def failing(db, dependent, document_id):
        if dependent.model is SigningRequest:
            raise RuntimeError("timeout")
        return original(db, dependent, document_id)

    with patch.object(orchestrator, "_delete_dependent", side_effect=failing):
        with pytest.raises(DeletionAbortedError) as exc:
            orchestrator.delete_document(session, doc_id)

    assert exc.value.step == "signing_requests"
    assert exc.value.status_code == 503
    assert "signing_requests" in exc.value.message
    session.expunge_all()
    # el documento y su archivo siguen ahí; lo ya borrado no se restaura
    assert session.get(Document, doc_id) is not None
    assert blob_store.exists("uploads/2024/01/01/anonymous/doc.pdf")
    assert count_rows(session, doc_id)["mappings"] == 0
    assert count_rows(session, doc_id)["signing_requests"] == 1


def test_error_al_borrar_archivo_es_warning(session, stored_document, blob_store):
    doc = stored_document()
    doc_id = doc.id
    orchestrator = DeletionOrchestrator(blob_store, BUCKET)
    with patch.object(blob_store, "remove", side_effect=OSError("storage caído")):
        result = orchestrator.delete_document(session, doc_id)
    assert len(result.warnings) == 1
    assert "storage caído" in result.warnings[0]
    session.expunge_all()
    assert session.get(Document, doc_id) is None


def test_error_en_el_documento_es_fatal(session, orchestrator, stored_document):
    doc = stored_document()
    doc_id = doc.id

    def reject(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("DELETE FROM documents"):
            raise RuntimeError("restricción violada")

    event.listen(engine, "before_cursor_execute", reject)
    try:
        with pytest.raises(FatalError):
            orchestrator.delete_document(session, doc_id)
    finally:
        event.remove(engine, "before_cursor_execute", reject)


def test_endpoint_delete(client, auth_headers, stored_document, session):
    doc = stored_document()
    doc_id = doc.id
    populate(session, doc_id)
    resp = client.delete(f"/documents/{doc_id}", headers=auth_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"success": True, "message": "Documento eliminado", "warnings": []}
    assert client.get(f"/documents/{doc_id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/documents/{doc_id}", headers=auth_headers).status_code == 404


def test_endpoint_delete_abortado_responde_503_y_se_puede_reintentar(client, auth_headers,
                                                                     stored_document, session,
                                                                     components):
    doc = stored_document()
    doc_id = doc.id
    populate(session, doc_id)
    orchestrator = components.deletion
    original = orchestrator._delete_dependent

    def failing(db, dependent, document_id):
        if dependent.model is DocumentSignature:
            raise RuntimeError("timeout")
        return original(db, dependent, document_id)

    with patch.object(orchestrator, "_delete_dependent", side_effect=failing):
        resp = client.delete(f"/documents/{doc_id}", headers=auth_headers)
    assert resp.status_code == 503
    assert resp.json()["success"] is False
    assert client.get(f"/documents/{doc_id}", headers=auth_headers).status_code == 200

    resp = client.delete(f"/documents/{doc_id}", headers=auth_headers)
    assert resp.status_code == 200, resp.text
    assert client.get(f"/documents/{doc_id}", headers=auth_headers).status_code == 404
