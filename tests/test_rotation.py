import pytest

from modules.common.errors import NotFoundError, ValidationError
from modules.documents.services.rotation_service import RotationService


def test_cuatro_rotaciones_vuelven_al_inicio(session, stored_document):
    doc = stored_document()
    seen = [RotationService.rotate(session, doc.id, 90).rotation for _ in range(4)]
    assert seen == [90, 180, 270, 0]


def test_rotacion_negativa(session, stored_document):
    doc = stored_document()
    assert RotationService.rotate(session, doc.id, -90).rotation == 270


def test_rotacion_por_pagina_no_afecta_las_demas(session, stored_document):
    doc = stored_document(pages=3)
    doc = RotationService.rotate(session, doc.id, 90, pages=[2])
    assert doc.rotation == 0
    assert doc.page_rotations == {"2": 90}
    assert [doc.rotation_for(p) for p in (1, 2, 3)] == [0, 90, 0]


def test_rotacion_global_avanza_paginas_explicitas(session, stored_document):
    doc = stored_document(pages=3)
    RotationService.rotate(session, doc.id, 90, pages=[1])
    doc = RotationService.rotate(session, doc.id, 180)
    assert doc.rotation == 180
    assert [doc.rotation_for(p) for p in (1, 2, 3)] == [270, 180, 180]


def test_pagina_repetida_acumula(session, stored_document):
    doc = stored_document(pages=2)
    doc = RotationService.rotate(session, doc.id, 90, pages=[1, 1])
    assert doc.page_rotations == {"1": 180}


@pytest.mark.parametrize("degrees", [0, 45, 360, 100])
def test_grados_invalidos(session, stored_document, degrees):
    doc = stored_document()
    with pytest.raises(ValidationError):
        RotationService.rotate(session, doc.id, degrees)


def test_pagina_fuera_de_rango(session, stored_document):
    doc = stored_document(pages=2)
    with pytest.raises(ValidationError):
        RotationService.rotate(session, doc.id, 90, pages=[3])


def test_documento_inexistente(session):
    with pytest.raises(NotFoundError):
        RotationService.rotate(session, 404, 90)


def test_endpoint_rotate_no_modifica_el_pdf(client, auth_headers, stored_document, blob_store):
    doc = stored_document()
    before = blob_store.download(doc.file_path)
    resp = client.post(f"/documents/{doc.id}/rotate", json={"rotation": 90}, headers=auth_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["rotation"] == 90
    assert blob_store.download(doc.file_path) == before

    resp = client.post(f"/documents/{doc.id}/rotate", json={"rotation": 30}, headers=auth_headers)
    assert resp.status_code == 400
