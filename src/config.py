from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

MB = 1024 * 1024


class Settings(BaseSettings):
    """
    Configuración del servicio, leída del entorno (prefijo ESIGN_).
    """

    model_config = SettingsConfigDict(env_prefix="ESIGN_", env_file=".env", extra="ignore")

    # Base de datos
    database_url: str = "postgresql://postgres:root@db:5432/dp-db"

    # Storage
    storage_root: str = "storage"
    storage_bucket: str = "public-documents"
    public_base_url: str = "http://localhost:8000/storage"

    # Staging / merge
    session_ttl_seconds: int = 3600
    merge_min_files: int = 2
    merge_max_files: int = 20
    max_source_bytes: int = 50 * MB
    max_merge_bytes: int = 200 * MB
    merge_compression: bool = True

    # Upload resumible
    chunk_size: int = 6 * MB
    upload_retry_attempts: int = 5
    upload_backoff_seconds: float = 1.0
    upload_backoff_max_seconds: float = 20.0

    # Auth
    jwt_secret: str = "your-secret-key-here"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Limpieza de documentos temporales
    temporary_document_max_age_hours: int = 24
    cleanup_job_enabled: bool = True

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
