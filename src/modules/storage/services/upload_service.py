import base64
import binascii
import logging
import posixpath
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from modules.common.errors import (
    BlobExistsError, ConflictError, NotFoundError, ValidationError,
)
from modules.merge.services.merge_service import MergeService
from modules.storage.services.blob_store import BlobStore
from modules.storage.services.paths import MERGE_STAGING_PREFIX, disambiguate_path

logger = logging.getLogger(__name__)

PARTS_PREFIX = f"{MERGE_STAGING_PREFIX}/_parts"


def parse_metadata(header: Optional[str]) -> dict:
    """Decodifica ``Upload-Metadata``: pares ``clave base64`` separados por coma."""
    metadata = {}
    if not header:
        return metadata
    for pair in header.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, _, encoded = pair.partition(" ")
        try:
            metadata[key] = base64.b64decode(encoded, validate=True).decode() if encoded else ""
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ValidationError(f"Upload-Metadata inválido para {key}") from exc
    return metadata


def _check_object_name(raw: Optional[str], session_id: Optional[str]) -> str:
    """
    Destino final del upload dentro del bucket.

    Session uploads land under ``temp-merge/<sessionId>/``; the parts area
    is never a valid target.
    """
    name = (raw or "").strip().lstrip("/")
    if not name:
        raise ValidationError("Upload-Metadata debe incluir objectName")
    name = posixpath.normpath(name)
    if name == ".." or name.startswith("../") or name.startswith(f"{PARTS_PREFIX}/"):
        raise ValidationError(f"objectName inválido: {raw}")
    if session_id and not name.startswith(f"{MERGE_STAGING_PREFIX}/{session_id}/"):
        raise ValidationError(
            f"objectName debe estar bajo {MERGE_STAGING_PREFIX}/{session_id}/"
        )
    return name


@dataclass
class UploadState:
    upload_id: str
    length: int
    object_name: str
    content_type: str
    session_id: Optional[str]
    file_name: Optional[str]
    created_at: datetime
    offset: int = 0
    completed_path: Optional[str] = None

    @property
    def part_path(self) -> str:
        return f"{PARTS_PREFIX}/{self.upload_id}.part"


class ResumableUploadService:
    """
    Lado servidor del upload resumible.

    Appends are idempotent with respect to ``Upload-Offset``: an already
    stored range is acknowledged without writing, an overlapping chunk only
    writes its missing tail, and a chunk starting past the stored size is a
    conflict. Upload state is kept in process memory for ``ttl``.
    """

    def __init__(self, blob_store: BlobStore, merge_service: MergeService,
                 ttl: timedelta = timedelta(hours=1),
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.blob_store = blob_store
        self.merge_service = merge_service
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._uploads: dict[str, UploadState] = {}

    def _sweep(self) -> None:
        cutoff = self._clock() - self.ttl
        with self._lock:
            stale = [u for u in self._uploads.values() if u.created_at <= cutoff]
            for state in stale:
                del self._uploads[state.upload_id]
        for state in stale:
            if state.completed_path is None:
                self.blob_store.remove([state.part_path])
            logger.info("Upload %s expired", state.upload_id)

    def _require(self, upload_id: str) -> UploadState:
        state = self._uploads.get(upload_id)
        if state is None:
            raise NotFoundError(f"Upload {upload_id} no encontrado")
        return state

    def create(self, length: int, metadata: dict) -> UploadState:
        self._sweep()
        session_id = metadata.get("sessionId") or None
        object_name = _check_object_name(metadata.get("objectName"), session_id)
        bucket = metadata.get("bucketName")
        if bucket and bucket != self.blob_store.bucket:
            raise ValidationError(f"Bucket desconocido: {bucket}")
        content_type = metadata.get("contentType") or "application/pdf"
        file_name = metadata.get("fileName") or posixpath.basename(object_name)
        self.merge_service.validate_source(file_name, length, content_type)

        state = UploadState(
            upload_id=uuid.uuid4().hex,
            length=length,
            object_name=object_name,
            content_type=content_type,
            session_id=session_id,
            file_name=file_name,
            created_at=self._clock(),
        )
        with self._lock:
            self._uploads[state.upload_id] = state
        logger.info("Upload %s created for %s (%d bytes)", state.upload_id, object_name, length)
        return state

    def status(self, upload_id: str) -> UploadState:
        self._sweep()
        with self._lock:
            return self._require(upload_id)

    def append(self, upload_id: str, offset: int, data: bytes) -> UploadState:
        self._sweep()
        with self._lock:
            state = self._require(upload_id)
            if offset < 0 or offset > state.offset:
                raise ConflictError(
                    f"Offset {offset} no coincide con el offset actual {state.offset}"
                )
            end = offset + len(data)
            if end > state.length:
                raise ValidationError(
                    f"El chunk excede Upload-Length ({end} > {state.length})"
                )
            if end > state.offset:
                tail = data[state.offset - offset:]
                state.offset = self.blob_store.append(state.part_path, tail)
            else:
                logger.debug("Chunk %d-%d of %s already stored", offset, end, upload_id)

            if state.offset == state.length and state.completed_path is None:
                self._finalize(state)
            return state

    def _finalize(self, state: UploadState) -> None:
        try:
            path = self.blob_store.move(state.part_path, state.object_name)
        except BlobExistsError:
            path = self.blob_store.move(state.part_path, disambiguate_path(state.object_name))
        state.completed_path = path
        if state.session_id:
            self.merge_service.record_staged(state.session_id, path, state.length,
                                             state.content_type, state.file_name)
        logger.info("Upload %s completed at %s", state.upload_id, path)

    def abort(self, upload_id: str) -> None:
        with self._lock:
            state = self._require(upload_id)
            del self._uploads[upload_id]
        if state.completed_path is None:
            self.blob_store.remove([state.part_path])
        logger.info("Upload %s aborted at offset %d", upload_id, state.offset)
