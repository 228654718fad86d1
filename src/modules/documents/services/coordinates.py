"""
Normalización de coordenadas de firmas y anotaciones.

La geometría se persiste siempre en forma relativa (0..1) respecto del tamaño
intrínseco de la página: el media box sin rotar ni escalar, con origen arriba
a la izquierda como en el editor. Cualquier consumidor (visor, motor de
impresión) solo necesita ese tamaño para recuperar coordenadas absolutas.

La rotación nunca se guarda dentro de la geometría. Se aplica al renderizar,
como una transformación separada por página (``relative_to_display``).

Never pass a size reported by a renderer that already includes rotation or
zoom as ``size``: the transform would be applied twice.
"""
from typing import NamedTuple

from modules.common.errors import ValidationError

VALID_ROTATIONS = (0, 90, 180, 270)
TOLERANCE = 1e-6


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class PageSize(NamedTuple):
    width: float
    height: float


def _check_size(size: PageSize) -> None:
    if size.width <= 0 or size.height <= 0:
        raise ValidationError(f"Dimensiones de página inválidas: {size.width}x{size.height}")


def to_relative(rect: Rect, size: PageSize) -> Rect:
    _check_size(size)
    return Rect(rect.x / size.width, rect.y / size.height,
                rect.width / size.width, rect.height / size.height)


def to_absolute(rect: Rect, size: PageSize) -> Rect:
    _check_size(size)
    return Rect(rect.x * size.width, rect.y * size.height,
                rect.width * size.width, rect.height * size.height)


def to_pdf_space(rect: Rect, size: PageSize) -> Rect:
    """Rect absoluto con origen arriba-izquierda -> origen abajo-izquierda (PDF)."""
    return Rect(rect.x, size.height - rect.y - rect.height, rect.width, rect.height)


def normalize_rotation(degrees: int) -> int:
    if degrees % 90 != 0:
        raise ValidationError(f"Rotación inválida: {degrees}")
    return degrees % 360


def clamp_to_page(rect: Rect) -> Rect:
    """Mueve un rect relativo dentro de [0, 1] conservando su tamaño."""
    width = min(max(rect.width, 0.0), 1.0)
    height = min(max(rect.height, 0.0), 1.0)
    x = min(max(rect.x, 0.0), 1.0 - width)
    y = min(max(rect.y, 0.0), 1.0 - height)
    return Rect(x, y, width, height)


def intrinsic_page_size(page) -> PageSize:
    """Tamaño del media box de una página PyPDF2, ignorando /Rotate."""
    box = page.mediabox
    return PageSize(abs(float(box[2]) - float(box[0])), abs(float(box[3]) - float(box[1])))


def rotated_size(size: PageSize, rotation: int) -> PageSize:
    if normalize_rotation(rotation) in (90, 270):
        return PageSize(size.height, size.width)
    return size


def _rotate_rect(rect: Rect, size: PageSize, rotation: int) -> Rect:
    # rotación horaria, como /Rotate
    w, h = size
    if rotation == 90:
        return Rect(h - rect.y - rect.height, rect.x, rect.height, rect.width)
    if rotation == 180:
        return Rect(w - rect.x - rect.width, h - rect.y - rect.height, rect.width, rect.height)
    if rotation == 270:
        return Rect(rect.y, w - rect.x - rect.width, rect.height, rect.width)
    return rect


def _unrotate_rect(rect: Rect, size: PageSize, rotation: int) -> Rect:
    w, h = size
    if rotation == 90:
        return Rect(rect.y, h - rect.x - rect.width, rect.height, rect.width)
    if rotation == 180:
        return Rect(w - rect.x - rect.width, h - rect.y - rect.height, rect.width, rect.height)
    if rotation == 270:
        return Rect(w - rect.y - rect.height, rect.x, rect.height, rect.width)
    return rect


def relative_to_display(rect: Rect, size: PageSize, rotation: int = 0, scale: float = 1.0) -> Rect:
    """Rect relativo -> píxeles de un visor que muestra la página rotada y con zoom."""
    if scale <= 0:
        raise ValidationError(f"Escala inválida: {scale}")
    shown = _rotate_rect(to_absolute(rect, size), size, normalize_rotation(rotation))
    return Rect(*(value * scale for value in shown))


def display_to_relative(rect: Rect, size: PageSize, rotation: int = 0, scale: float = 1.0) -> Rect:
    """Inversa de ``relative_to_display``: lo que el usuario dibujó en el editor."""
    if scale <= 0:
        raise ValidationError(f"Escala inválida: {scale}")
    unscaled = Rect(*(value / scale for value in rect))
    return to_relative(_unrotate_rect(unscaled, size, normalize_rotation(rotation)), size)
