import hmac
import logging

from sqlalchemy.orm import Session

from admission.config import settings
from admission.errors import TooManyAttempts, Unauthorized
from admission.models.candidate import Candidate
from admission.models.credential import TemporaryCredential
from admission.services.session_store import SessionStore
from admission.services.throttle_service import (
    get_throttle_delay,
    record_failed_attempt,
    reset_failed_attempts,
)
from admission.utils.clock import utcnow
from admission.utils.security import generate_session_token
from admission.utils.text import only_digits

logger = logging.getLogger(__name__)

INVALID_LOGIN = "CPF ou senha inválidos"


def login(db: Session, store: SessionStore, cpf: str, password: str) -> dict:
    """Exchange a temporary CPF/password pair for a candidate session token.

    Every failure raises the same ``Unauthorized`` message so the caller
    cannot tell an unknown CPF from a wrong password.
    """
    cpf_digits = only_digits(cpf)
    throttle_key = f"candidate_login:{cpf_digits}"

    delay = get_throttle_delay(db, throttle_key)
    if delay > 0:
        raise TooManyAttempts(delay)

    credential = (
        db.query(TemporaryCredential)
        .filter(TemporaryCredential.cpf == cpf_digits, TemporaryCredential.active.is_(True))
        .order_by(TemporaryCredential.created_at.desc(), TemporaryCredential.id.desc())
        .first()
    )

    supplied = (password or "").strip().encode("utf-8")
    if (
        credential is None
        or credential.expires_at <= utcnow()
        or not hmac.compare_digest(credential.password.encode("utf-8"), supplied)
    ):
        if cpf_digits:
            record_failed_attempt(db, throttle_key)
        logger.info("Candidate login rejected for cpf ending %s", cpf_digits[-2:] or "--")
        raise Unauthorized(INVALID_LOGIN)

    candidate = db.get(Candidate, credential.candidate_id)
    if candidate is None:
        raise Unauthorized(INVALID_LOGIN)

    reset_failed_attempts(db, throttle_key)
    token = generate_session_token()
    store.put(token, candidate.id, settings.session_ttl_seconds)
    logger.info("Candidate %s logged in to the document portal", candidate.id)

    return {
        "token": token,
        "candidato": {"id": candidate.id, "nome": candidate.nome, "email": candidate.email},
    }
