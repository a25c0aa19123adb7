import logging
import time

from sqlalchemy.orm import Session

from admission.config import settings
from admission.errors import InvalidState, TooManyAttempts, Unauthorized, ValidationFailed
from admission.models.hr_user import HrUser
from admission.services.throttle_service import (
    get_throttle_delay,
    record_failed_attempt,
    reset_failed_attempts,
)
from admission.utils.clock import utcnow
from admission.utils.security import generate_token, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class HrAuthService:
    """HR accounts and their in-memory bearer tokens."""

    def __init__(self):
        self._active_tokens: dict[str, tuple[int, float]] = {}  # token -> (user_id, expires_at)

    def _cleanup_expired(self):
        now = time.time()
        self._active_tokens = {
            t: entry for t, entry in self._active_tokens.items() if entry[1] > now
        }

    def setup(self, db: Session, nome: str, email: str, password: str) -> HrUser:
        if db.query(HrUser).first() is not None:
            raise InvalidState("Sistema já configurado")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(
                "Senha muito curta",
                [f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres."],
            )
        user = HrUser(
            nome=nome.strip(),
            email=email.strip().lower(),
            password_hash=hash_password(password),
            perfil="admin",
            created_at=utcnow(),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("First HR account created (%s)", user.email)
        return user

    def login(self, db: Session, email: str, password: str, throttle_key: str = "hr_login") -> dict:
        delay = get_throttle_delay(db, throttle_key)
        if delay > 0:
            raise TooManyAttempts(delay)

        user = db.query(HrUser).filter(HrUser.email == (email or "").strip().lower()).first()
        if user is None or not verify_password(user.password_hash, password or ""):
            record_failed_attempt(db, throttle_key)
            raise Unauthorized("Email ou senha inválidos")

        reset_failed_attempts(db, throttle_key)
        token = generate_token()
        self._active_tokens[token] = (user.id, time.time() + settings.hr_token_ttl_seconds)
        return {
            "token": token,
            "expires_in_seconds": settings.hr_token_ttl_seconds,
            "usuario": {"id": user.id, "nome": user.nome, "email": user.email, "perfil": user.perfil},
        }

    def logout(self, token: str):
        self._active_tokens.pop(token, None)

    def validate_token(self, token: str) -> int | None:
        self._cleanup_expired()
        entry = self._active_tokens.get(token)
        return entry[0] if entry else None

    def clear(self):
        self._active_tokens.clear()


hr_auth_service = HrAuthService()
