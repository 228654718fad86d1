import pytest
from PyPDF2 import PdfReader
import io

from modules.common.errors import ValidationError
from modules.documents.services.coordinates import (
    PageSize, Rect, clamp_to_page, display_to_relative, intrinsic_page_size, normalize_rotation,
    relative_to_display, rotated_size, to_absolute, to_pdf_space, to_relative,
)
from modules.documents.schemas.geometry import SignatureField, SignatureFieldInput
from modules.merge.services.merge_engine import set_page_rotation

LETTER = PageSize(612, 792)


def assert_rect_approx(actual, expected):
    assert tuple(actual) == pytest.approx(tuple(expected))


def test_relativo_absoluto_ida_y_vuelta():
    rect = Rect(61.2, 158.4, 183.6, 79.2)
    relative = to_relative(rect, LETTER)
    assert_rect_approx(relative, (0.1, 0.2, 0.3, 0.1))
    assert_rect_approx(to_absolute(relative, LETTER), rect)


def test_tamano_de_pagina_invalido():
    with pytest.raises(ValidationError):
        to_relative(Rect(0, 0, 10, 10), PageSize(0, 792))
    with pytest.raises(ValidationError):
        to_absolute(Rect(0, 0, 0.1, 0.1), PageSize(612, -1))


def test_to_pdf_space_invierte_eje_y():
    assert to_pdf_space(Rect(10, 20, 100, 50), PageSize(200, 300)) == Rect(10, 230, 100, 50)


@pytest.mark.parametrize("degrees,expected", [
    (0, 0), (90, 90), (360, 0), (450, 90), (-90, 270), (-180, 180), (720, 0),
])
def test_normalize_rotation(degrees, expected):
    assert normalize_rotation(degrees) == expected


def test_normalize_rotation_rechaza_angulos_no_rectos():
    with pytest.raises(ValidationError):
        normalize_rotation(45)


def test_clamp_to_page_conserva_tamano():
    assert_rect_approx(clamp_to_page(Rect(0.9, -0.1, 0.2, 0.3)), (0.8, 0.0, 0.2, 0.3))


def test_intrinsic_page_size_ignora_rotate(example_pdf):
    page = PdfReader(io.BytesIO(example_pdf)).pages[0]
    set_page_rotation(page, 90)
    assert intrinsic_page_size(page) == PageSize(612, 792)
    assert rotated_size(intrinsic_page_size(page), 90) == PageSize(792, 612)


def test_relative_to_display_sin_rotacion_aplica_escala():
    shown = relative_to_display(Rect(0.1, 0.2, 0.3, 0.1), LETTER, 0, scale=2.0)
    assert_rect_approx(shown, (122.4, 316.8, 367.2, 158.4))


def test_relative_to_display_rotado_90():
    shown = relative_to_display(Rect(0.1, 0.2, 0.3, 0.1), LETTER, 90)
    assert_rect_approx(shown, (554.4, 61.2, 79.2, 183.6))


def test_relative_to_display_rotado_180():
    shown = relative_to_display(Rect(0.1, 0.2, 0.3, 0.1), LETTER, 180)
    assert_rect_approx(shown, (367.2, 554.4, 183.6, 79.2))


@pytest.mark.parametrize("rotation", [0, 90, 180, 270])
@pytest.mark.parametrize("scale", [0.5, 1.0, 1.75])
def test_display_ida_y_vuelta_recupera_relativo(rotation, scale):
    original = Rect(0.15, 0.6, 0.25, 0.08)
    shown = relative_to_display(original, LETTER, rotation, scale)
    assert_rect_approx(display_to_relative(shown, LETTER, rotation, scale), original)


def test_display_rotado_queda_dentro_de_la_pagina_mostrada():
    shown = relative_to_display(Rect(0.7, 0.9, 0.3, 0.1), LETTER, 270)
    width, height = rotated_size(LETTER, 270)
    assert shown.x + shown.width <= width + 1e-6
    assert shown.y + shown.height <= height + 1e-6


def test_escala_invalida():
    with pytest.raises(ValidationError):
        relative_to_display(Rect(0, 0, 0.1, 0.1), LETTER, 0, scale=0)


def test_signature_field_fuera_de_pagina():
    with pytest.raises(Exception):
        SignatureField(page=1, relativeX=0.8, relativeY=0.1, relativeWidth=0.3, relativeHeight=0.1)


def test_signature_field_input_absoluto_se_normaliza_una_vez():
    field = SignatureFieldInput(page=2, x=61.2, y=158.4, width=183.6, height=79.2,
                                pageWidth=612, pageHeight=792, signerIndex=1).normalized()
    assert field.page == 2
    assert field.signer_index == 1
    assert_rect_approx(field.rect, (0.1, 0.2, 0.3, 0.1))
    assert field.to_record()["relativeX"] == pytest.approx(0.1)


def test_signature_field_input_sin_geometria():
    with pytest.raises(Exception):
        SignatureFieldInput(page=1, x=10, y=10)
