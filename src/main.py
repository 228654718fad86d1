import logging
import uvicorn
from datetime import timedelta
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import Settings, get_settings
from create_tables import crear_tablas
from database import SessionLocal

from modules.common.dependencies import build_components
from modules.common.http import register_error_handlers
from modules.documents.job import start_cleanup_job
from modules.storage.services.blob_store import BlobStore
from modules.documents.controllers.document_controller import router as document_router
from modules.documents.controllers.signature_controller import router as signature_router
from modules.merge.controllers.merge_controller import router as merge_router
from modules.storage.controllers.upload_controller import router as upload_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    settings = app.state.components.settings
    logger.info("Iniciando aplicación...")
    crear_tablas()
    scheduler = None
    if settings.cleanup_job_enabled:
        scheduler = start_cleanup_job(
            SessionLocal,
            app.state.components.deletion,
            timedelta(hours=settings.temporary_document_max_age_hours),
        )
        logger.info("Job de limpieza de documentos temporales iniciado")
    yield
    # --- Shutdown logic ---
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Aplicación detenida")


def create_app(settings: Optional[Settings] = None, blob_store: Optional[BlobStore] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Sistema de Gestión de Documentos",
        description="API para composición de PDFs, firmas y ciclo de vida de documentos",
        version="2.0.0",
        lifespan=lifespan
    )
    app.state.components = build_components(settings, blob_store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:3001",
            "http://127.0.0.1:3001",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
        allow_headers=[
            "Accept",
            "Accept-Language",
            "Content-Language",
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "Origin",
            "Tus-Resumable",
            "Upload-Length",
            "Upload-Offset",
            "Upload-Metadata",
        ],
        expose_headers=["Location", "Upload-Offset", "Upload-Length", "Upload-Path", "Tus-Resumable"],
        max_age=86400,
    )
    register_error_handlers(app)

    # Routers
    app.include_router(upload_router)
    app.include_router(merge_router)
    app.include_router(document_router, prefix="/documents")
    app.include_router(signature_router, prefix="/documents")
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
