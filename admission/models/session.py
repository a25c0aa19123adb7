from sqlalchemy import Column, Float, Integer, Text
from admission.database import Base


class CandidateSession(Base):
    __tablename__ = "candidate_sessions"

    token = Column(Text, primary_key=True)
    candidate_id = Column(Integer, nullable=False, index=True)
    expires_at = Column(Float, nullable=False)
