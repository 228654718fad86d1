from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base


class Document(Base):
    __tablename__ = 'documents'
    __table_args__ = (
        CheckConstraint("rotation IN (0, 90, 180, 270)", name="ck_documents_rotation"),
    )

    id = Column(Integer, primary_key=True)
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String, nullable=False, default="application/pdf")
    page_count = Column(Integer, nullable=True)
    document_type = Column(String, nullable=True)
    files_metadata = Column(JSON, nullable=True)

    # Rotación acumulada del documento (0/90/180/270) y por página ({"1": 90})
    rotation = Column(Integer, nullable=False, default=0)
    page_rotations = Column(JSON, nullable=False, default=dict)

    temporary = Column(Boolean, nullable=False, default=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Solo lectura: el borrado de dependientes lo hace DeletionOrchestrator
    signatures = relationship("DocumentSignature", order_by="DocumentSignature.id", viewonly=True)

    def rotation_for(self, page_number: int) -> int:
        """Rotación efectiva de una página (1-based)."""
        rotations = self.page_rotations or {}
        return int(rotations.get(str(page_number), self.rotation or 0))
