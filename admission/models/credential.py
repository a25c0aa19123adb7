from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from admission.database import Base


class TemporaryCredential(Base):
    __tablename__ = "temporary_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    cpf = Column(Text, nullable=False, index=True)
    # Kept readable so HR can re-send the same one-time password while it is active.
    password = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)

    candidate = relationship("Candidate", back_populates="credentials")
