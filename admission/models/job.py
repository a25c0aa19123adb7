from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.orm import relationship
from admission.database import Base


class JobPosting(Base):
    __tablename__ = "job_postings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    titulo = Column(Text, nullable=False)
    descricao = Column(Text)
    local = Column(Text)
    status = Column(Text, nullable=False, default="aberta")
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    candidates = relationship("Candidate", back_populates="job_posting")
