from sqlalchemy import JSON, Column, DateTime, Integer, Text
from admission.database import Base


class OutboxTask(Base):
    __tablename__ = "outbox_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(Text, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
