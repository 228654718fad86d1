from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, String, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base


class DocumentSignature(Base):
    __tablename__ = "document_signatures"

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    page = Column(Integer, nullable=False)
    # geometría relativa (0..1) a la página sin rotar
    relative_x = Column(Float, nullable=False)
    relative_y = Column(Float, nullable=False)
    relative_width = Column(Float, nullable=False)
    relative_height = Column(Float, nullable=False)
    signer_index = Column(Integer, nullable=False, default=0)
    signature_data = Column(Text, nullable=True)
    signature_source = Column(String, nullable=False, default="canvas")
    created_by = Column(String, nullable=True)
    ts = Column(DateTime, default=datetime.utcnow, nullable=False)

    document = relationship("Document", viewonly=True)
