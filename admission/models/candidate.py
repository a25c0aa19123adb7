from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from admission.database import Base


class Candidate(Base):
    __tablename__ = "candidates"
    __table_args__ = (UniqueConstraint("cpf", "job_posting_id", name="uq_candidates_cpf_job"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    nome = Column(Text, nullable=False)
    cpf = Column(Text, nullable=False, index=True)
    email = Column(Text, nullable=False)
    telefone = Column(Text)
    data_nascimento = Column(Text)
    estado = Column(Text)
    cidade = Column(Text)
    bairro = Column(Text)
    curriculo_url = Column(Text)
    job_posting_id = Column(Integer, ForeignKey("job_postings.id", ondelete="SET NULL"), nullable=True)
    status = Column(Text, nullable=False, default="novo", index=True)
    raca = Column(Text)
    admission_export = Column(JSON)
    exported_at = Column(DateTime)
    # Set once the data subject had the record anonymized.
    erased_at = Column(DateTime)
    erasure_reason = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    job_posting = relationship("JobPosting", back_populates="candidates")
    document_record = relationship("DocumentRecord", back_populates="candidate", uselist=False)
    credentials = relationship("TemporaryCredential", back_populates="candidate", cascade="all, delete-orphan")

    @property
    def job_title(self) -> str | None:
        return self.job_posting.titulo if self.job_posting else None
