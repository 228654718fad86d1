from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional


class SessionState(PyEnum):
    STAGING = "STAGING"
    MERGED = "MERGED"
    PROMOTED = "PROMOTED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class StagedBlob:
    session_id: str
    relative_path: str
    size_bytes: int
    content_type: str
    created_at: datetime
    file_name: Optional[str] = None


@dataclass(frozen=True)
class MergeResult:
    """Resultado de un merge retenido en memoria hasta su promoción."""
    result_id: str
    data: bytes
    total_pages: int
    output_name: str
    source_paths: tuple
    compression_info: dict
    created_at: datetime


@dataclass
class MergeSession:
    session_id: str
    created_at: datetime
    expires_at: datetime
    state: SessionState = SessionState.STAGING
    staged_blobs: list = field(default_factory=list)
    merge_result: Optional[MergeResult] = None

    @property
    def total_pages(self) -> Optional[int]:
        return self.merge_result.total_pages if self.merge_result else None

    def staged_paths(self) -> list[str]:
        return [blob.relative_path for blob in self.staged_blobs]

    def find_blob(self, path: str) -> Optional[StagedBlob]:
        for blob in self.staged_blobs:
            if blob.relative_path == path:
                return blob
        return None
