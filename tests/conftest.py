import io
import os
import tempfile

# antes de importar la app: el engine se crea al importar database
os.environ["ESIGN_DATABASE_URL"] = "sqlite://"
os.environ["ESIGN_STORAGE_ROOT"] = tempfile.mkdtemp(prefix="esign-storage-")
os.environ["ESIGN_CLEANUP_JOB_ENABLED"] = "false"
os.environ["ESIGN_JWT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from config import Settings
from database import Base, SessionLocal, engine
from main import create_app
from modules.auth.services.auth_service import AuthService
from modules.documents.models import Document
from modules.storage.services.blob_store import LocalBlobStore

BUCKET = "public-documents"
TEST_USER_ID = "5f0c3a9e-user-0001"


def create_dummy_pdf_bytes(pages=1, text="PDF para test", pagesize=letter):
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=pagesize)
    for number in range(1, pages + 1):
        c.drawString(50, 750, f"{text} - pagina {number}")
        c.showPage()
    c.save()
    buf.seek(0)
    return buf.read()


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        storage_root=str(tmp_path),
        storage_bucket=BUCKET,
        public_base_url="http://testserver/storage",
        cleanup_job_enabled=False,
        jwt_secret="test-secret",
    )


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path), BUCKET, "http://testserver/storage")


@pytest.fixture
def app(settings, blob_store):
    return create_app(settings, blob_store)


@pytest.fixture
def components(app):
    return app.state.components


@pytest.fixture
def client(app):
    # sin context manager: no corre el lifespan (tablas y job los maneja el test)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    token = AuthService.create_access_token({"sub": TEST_USER_ID, "email": "juan@empresa.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_pdf():
    return create_dummy_pdf_bytes


@pytest.fixture
def example_pdf():
    return create_dummy_pdf_bytes()


@pytest.fixture
def stored_document(session, blob_store):
    """Documento permanente de 3 páginas con su PDF en el storage."""
    def _create(pages=3, temporary=False, path="uploads/2024/01/01/anonymous/doc.pdf", **kwargs):
        data = create_dummy_pdf_bytes(pages=pages)
        blob_store.upload(path, data)
        doc = Document(
            file_name=kwargs.pop("file_name", "doc.pdf"),
            file_path=path,
            file_size=len(data),
            page_count=pages,
            temporary=temporary,
            **kwargs,
        )
        session.add(doc)
        session.commit()
        session.refresh(doc)
        return doc
    return _create
