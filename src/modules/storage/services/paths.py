"""
Convenciones de paths del storage.

Los documentos permanentes viven bajo ``uploads/``; los temporales bajo una
subcarpeta de sesión marcada con ``temp-`` que la promoción elimina al mover
el objeto.
"""
import posixpath
import re
import time
import unicodedata
import uuid
from datetime import datetime
from typing import Optional

PERMANENT_PREFIX = "uploads"
TEMP_MARKER = "temp-"
MERGE_STAGING_PREFIX = "temp-merge"


def _token() -> str:
    return uuid.uuid4().hex[:8]


def sanitize_name(name: str) -> str:
    normalized = unicodedata.normalize("NFD", name)
    without_diacritics = "".join(c for c in normalized if not unicodedata.combining(c))
    sanitized = re.sub(r"[^\w\s-]", "", without_diacritics)
    sanitized = re.sub(r"\s+", "_", sanitized)
    sanitized = re.sub(r"-+", "-", sanitized)
    sanitized = re.sub(r"_+", "_", sanitized)
    sanitized = sanitized.strip("-_").lower()
    return sanitized or "document"


def normalize_file_name(original_name: str) -> str:
    """
    Normaliza un nombre de archivo para el storage:
    sin acentos ni caracteres especiales, en minúsculas y con un prefijo
    ``<timestamp_ms>_<token>_`` que lo hace único.
    """
    base, ext = posixpath.splitext(original_name)
    if not base:
        base, ext = ext, ""
    return f"{int(time.time() * 1000)}_{_token()}_{sanitize_name(base)}{ext.lower()}"


def generate_file_path(normalized_name: str, user_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    user_part = str(user_id)[:8] if user_id else "anonymous"
    return f"{PERMANENT_PREFIX}/{now:%Y/%m/%d}/{user_part}/{normalized_name}"


def staged_source_path(session_id: str, file_name: str) -> str:
    return f"{MERGE_STAGING_PREFIX}/{session_id}/{_token()}_{sanitize_name(posixpath.splitext(file_name)[0])}.pdf"


def temporary_document_path(session_id: str, file_name: str) -> str:
    return f"{PERMANENT_PREFIX}/{TEMP_MARKER}{session_id}/{normalize_file_name(file_name)}"


def strip_temp_marker(path: str) -> str:
    return path.replace(TEMP_MARKER, "", 1)


def disambiguate_path(path: str) -> str:
    """Inserta un token aleatorio delante del nombre de archivo."""
    folder, name = posixpath.split(path)
    return posixpath.join(folder, f"{_token()}_{name}")


def resolve_bucket_path(file_path: str, bucket: str) -> str:
    """
    Obtiene el path relativo al bucket a partir de los formatos históricos:
    con prefijo ``<bucket>/`` (a veces dentro de una URL completa), con la
    subcarpeta ``uploads/`` o solo el nombre del archivo.
    """
    path = file_path
    marker = f"{bucket}/"
    if marker in path:
        path = path.split(marker, 1)[1]
    path = path.lstrip("/")
    if "/" not in path:
        path = f"{PERMANENT_PREFIX}/{path}"
    return path
