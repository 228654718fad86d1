import base64
import io

import pytest
from PIL import Image
from PyPDF2 import PdfReader

from modules.documents.models import DocumentSignature, SignatureMapping
from modules.documents.services.print_service import PrintService, decode_image
from modules.merge.services.merge_engine import page_rotation

BUCKET = "public-documents"


def png_data_url():
    buf = io.BytesIO()
    Image.new("RGB", (40, 20), (20, 20, 120)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


def test_mapping_absoluto_se_guarda_relativo(client, auth_headers, stored_document, session):
    doc = stored_document()
    resp = client.put(f"/documents/{doc.id}/signature-mapping", headers=auth_headers, json={
        "fields": [
            {"page": 1, "x": 61.2, "y": 158.4, "width": 183.6, "height": 79.2,
             "pageWidth": 612, "pageHeight": 792},
            {"page": 2, "relativeX": 0.5, "relativeY": 0.8, "relativeWidth": 0.3,
             "relativeHeight": 0.1, "signerIndex": 1},
        ],
    })
    assert resp.status_code == 200, resp.text
    fields = resp.json()["fields"]
    assert fields[0]["relativeX"] == pytest.approx(0.1)
    assert fields[0]["relativeHeight"] == pytest.approx(0.1)
    assert fields[1]["signerIndex"] == 1

    stored = session.query(SignatureMapping).one()
    assert set(stored.fields[0]) == {
        "page", "relativeX", "relativeY", "relativeWidth", "relativeHeight", "signerIndex",
    }

    resp = client.get(f"/documents/{doc.id}/signature-mapping", headers=auth_headers)
    assert resp.json()["fields"] == fields


def test_mapping_reemplaza_el_anterior(client, auth_headers, stored_document, session):
    doc = stored_document()
    field = {"page": 1, "relativeX": 0.1, "relativeY": 0.1, "relativeWidth": 0.2, "relativeHeight": 0.1}
    client.put(f"/documents/{doc.id}/signature-mapping", headers=auth_headers, json={"fields": [field]})
    client.put(f"/documents/{doc.id}/signature-mapping", headers=auth_headers,
               json={"fields": [field, {**field, "page": 2}]})
    assert session.query(SignatureMapping).count() == 1
    assert len(session.query(SignatureMapping).one().fields) == 2


def test_mapping_fuera_de_pagina(client, auth_headers, stored_document):
    doc = stored_document(pages=1)
    resp = client.put(f"/documents/{doc.id}/signature-mapping", headers=auth_headers, json={
        "fields": [{"page": 1, "relativeX": 0.9, "relativeY": 0.1, "relativeWidth": 0.2,
                    "relativeHeight": 0.1}],
    })
    assert resp.status_code == 400
    resp = client.put(f"/documents/{doc.id}/signature-mapping", headers=auth_headers, json={
        "fields": [{"page": 5, "relativeX": 0.1, "relativeY": 0.1, "relativeWidth": 0.2,
                    "relativeHeight": 0.1}],
    })
    assert resp.status_code == 400


def test_mapping_documento_inexistente(client, auth_headers):
    resp = client.get("/documents/999/signature-mapping", headers=auth_headers)
    assert resp.status_code == 404


def test_template_de_mapping(client, auth_headers, stored_document):
    doc = stored_document()
    field = {"page": 1, "relativeX": 0.1, "relativeY": 0.1, "relativeWidth": 0.2, "relativeHeight": 0.1}
    mapping = client.put(f"/documents/{doc.id}/signature-mapping", headers=auth_headers,
                         json={"fields": [field], "isTemplate": True}).json()
    resp = client.post(f"/documents/signature-mappings/{mapping['id']}/templates",
                       headers=auth_headers, json={"name": "Contrato estándar"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["name"] == "Contrato estándar"


def test_firma_y_anotaciones(client, auth_headers, stored_document, session):
    doc = stored_document()
    resp = client.post(f"/documents/{doc.id}/signatures", headers=auth_headers, json={
        "field": {"page": 2, "x": 100, "y": 600, "width": 150, "height": 50,
                  "pageWidth": 612, "pageHeight": 792},
        "imageData": png_data_url(),
    })
    assert resp.status_code == 200, resp.text
    sig = session.get(DocumentSignature, resp.json()["signatureId"])
    assert sig.page == 2
    assert sig.relative_x == pytest.approx(100 / 612)
    assert sig.created_by == "5f0c3a9e-user-0001"

    resp = client.put(f"/documents/{doc.id}/annotations", headers=auth_headers,
                      json={"annotations": [{"type": "highlight", "page": 1}]})
    assert resp.status_code == 200
    assert resp.json()["count"] == 1


def test_decode_image_acepta_data_url():
    raw = decode_image(png_data_url())
    assert raw.startswith(b"\x89PNG")


def test_print_aplica_rotacion_y_dibuja_firmas(session, stored_document, blob_store):
    doc = stored_document(pages=2, rotation=90, page_rotations={"2": 180})
    session.add_all([
        DocumentSignature(document_id=doc.id, page=1, relative_x=0.1, relative_y=0.8,
                          relative_width=0.3, relative_height=0.1, signature_data=png_data_url()),
        DocumentSignature(document_id=doc.id, page=2, relative_x=0.5, relative_y=0.5,
                          relative_width=0.2, relative_height=0.1, signature_data="@@no-es-base64"),
        SignatureMapping(document_id=doc.id, fields=[
            {"page": 1, "relativeX": 0.5, "relativeY": 0.1, "relativeWidth": 0.3,
             "relativeHeight": 0.1, "signerIndex": 1},
        ]),
    ])
    session.commit()
    session.refresh(doc)

    data = PrintService(blob_store, BUCKET).render_document(session, doc.id)

    pages = PdfReader(io.BytesIO(data)).pages
    assert [page_rotation(p) for p in pages] == [90, 180]
    assert "Firma 2" in pages[0].extract_text()
    assert "Firmado" in pages[1].extract_text()
    # el original no cambia
    assert page_rotation(PdfReader(io.BytesIO(blob_store.download(doc.file_path))).pages[0]) == 0


def test_endpoint_print(client, auth_headers, stored_document):
    doc = stored_document()
    resp = client.get(f"/documents/{doc.id}/print", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.content.startswith(b"%PDF-")
