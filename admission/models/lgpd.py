from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from admission.database import Base


class DataSubjectRequest(Base):
    """An export or erasure request filed by the data subject (LGPD)."""

    __tablename__ = "lgpd_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="SET NULL"), nullable=True, index=True)
    tipo = Column(Text, nullable=False)
    email = Column(Text, nullable=False, index=True)
    telefone = Column(Text)
    ip = Column(Text)
    user_agent = Column(Text)
    verification_code = Column(Text, nullable=False)
    code_sent_at = Column(DateTime, nullable=False)
    code_validated_at = Column(DateTime)
    status = Column(Text, nullable=False, default="pendente", index=True)
    handled_by = Column(Integer, ForeignKey("hr_users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text)
    rejection_reason = Column(Text)
    receipt_hash = Column(Text)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    candidate = relationship("Candidate")
    handler = relationship("HrUser")
