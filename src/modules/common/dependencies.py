from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request

from config import Settings
from modules.documents.services.deletion import DeletionOrchestrator
from modules.documents.services.print_service import PrintService
from modules.merge.services.merge_engine import MergeEngine
from modules.merge.services.merge_service import MergeService, remove_staged_blobs
from modules.merge.services.promotion import PromotionService
from modules.merge.services.session_store import StagingSessionStore
from modules.storage.services.blob_store import BlobStore, LocalBlobStore
from modules.storage.services.upload_service import ResumableUploadService


@dataclass
class Components:
    """Servicios con estado propio, creados una vez por aplicación."""
    settings: Settings
    blob_store: BlobStore
    session_store: StagingSessionStore
    merge_service: MergeService
    promotion_service: PromotionService
    upload_service: ResumableUploadService
    deletion: DeletionOrchestrator
    print_service: PrintService


def build_components(settings: Settings, blob_store: Optional[BlobStore] = None) -> Components:
    blob_store = blob_store or LocalBlobStore(settings.storage_root, settings.storage_bucket,
                                              settings.public_base_url)
    ttl = timedelta(seconds=settings.session_ttl_seconds)
    session_store = StagingSessionStore(
        ttl=ttl,
        on_evict=lambda session: remove_staged_blobs(blob_store, session.staged_blobs),
    )
    engine = MergeEngine(settings.max_merge_bytes, compress=settings.merge_compression)
    merge_service = MergeService(blob_store, session_store, engine, settings)
    return Components(
        settings=settings,
        blob_store=blob_store,
        session_store=session_store,
        merge_service=merge_service,
        promotion_service=PromotionService(blob_store, session_store),
        upload_service=ResumableUploadService(blob_store, merge_service, ttl=ttl),
        deletion=DeletionOrchestrator(blob_store, settings.storage_bucket),
        print_service=PrintService(blob_store, settings.storage_bucket),
    )


def get_components(request: Request) -> Components:
    return request.app.state.components
