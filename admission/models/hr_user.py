from sqlalchemy import Column, DateTime, Float, Integer, Text
from admission.database import Base


class HrUser(Base):
    __tablename__ = "hr_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nome = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    perfil = Column(Text, nullable=False, default="rh")
    created_at = Column(DateTime, nullable=False)


class AuthThrottle(Base):
    __tablename__ = "auth_throttle"

    key = Column(Text, primary_key=True)
    failed_attempts = Column(Integer, nullable=False)
    last_failed_at = Column(Float, nullable=False)
