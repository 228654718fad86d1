from sqlalchemy import Column, Integer, ForeignKey, DateTime, String
from datetime import datetime
from database import Base


class SigningRequest(Base):
    __tablename__ = "signing_requests"

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    recipient_email = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)


class Request(Base):
    """Solicitud padre que agrupa envíos de un documento."""
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    title = Column(String, nullable=True)
    status = Column(String, nullable=False, default="sent")
    created_at = Column(DateTime, default=datetime.utcnow)
