from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, JSON
from datetime import datetime
from database import Base


class DocumentAnnotation(Base):
    __tablename__ = "document_annotations"

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    annotations = Column(JSON, nullable=False, default=list)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
