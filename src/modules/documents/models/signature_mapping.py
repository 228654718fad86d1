from sqlalchemy import Boolean, Column, Integer, ForeignKey, DateTime, String, JSON
from datetime import datetime
from database import Base


class SignatureMapping(Base):
    __tablename__ = "document_signature_mappings"

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    # lista de {page, relativeX, relativeY, relativeWidth, relativeHeight, signerIndex}
    fields = Column(JSON, nullable=False, default=list)
    is_template = Column(Boolean, nullable=False, default=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class SignatureMappingTemplate(Base):
    __tablename__ = "signature_mapping_templates"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    document_mapping_id = Column(
        Integer, ForeignKey("document_signature_mappings.id"), nullable=False, index=True
    )
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
