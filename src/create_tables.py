# create_tables.py
import logging
from database import engine, Base
# Importa todos los modelos para que se registren con Base
from modules.documents.models import (  # noqa: F401
    Document, DocumentSignature, SignatureMapping, SignatureMappingTemplate,
    SigningRequest, Request, DocumentAnnotation,
)

logger = logging.getLogger(__name__)


def crear_tablas(bind=None):
    """Crea todas las tablas en la base de datos"""
    logger.info("Tablas a crear: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    crear_tablas()
