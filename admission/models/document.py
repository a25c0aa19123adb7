from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from admission.database import Base


class DocumentRecord(Base):
    __tablename__ = "admission_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, unique=True)
    access_token = Column(Text, nullable=False, unique=True)
    token_expires_at = Column(DateTime, nullable=False)
    status = Column(Text, nullable=False, default="pendente", index=True)
    residency_issue_date = Column(Date)
    ethnicity = Column(Text)
    ethnicity_hash = Column(Text, unique=True)
    ethnicity_ip = Column(Text)
    ethnicity_user_agent = Column(Text)
    ethnicity_declared_at = Column(DateTime)
    dependents = Column(JSON, nullable=False, default=list)
    link_sent_at = Column(DateTime)
    first_upload_at = Column(DateTime)
    last_upload_at = Column(DateTime)
    completed_at = Column(DateTime)
    reviewed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)

    candidate = relationship("Candidate", back_populates="document_record")
    slots = relationship("DocumentSlot", back_populates="record", cascade="all, delete-orphan")

    def slot(self, document_type) -> "DocumentSlot | None":
        code = getattr(document_type, "value", document_type)
        for s in self.slots:
            if s.document_type == code:
                return s
        return None


class DocumentSlot(Base):
    __tablename__ = "document_slots"
    __table_args__ = (UniqueConstraint("record_id", "document_type", name="uq_document_slots_type"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(Integer, ForeignKey("admission_documents.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(Text, nullable=False)
    url = Column(Text)
    validated = Column(Boolean, nullable=False, default=False)
    rejected = Column(Boolean, nullable=False, default=False)
    rejection_reason = Column(Text)
    uploaded_at = Column(DateTime)

    record = relationship("DocumentRecord", back_populates="slots")
