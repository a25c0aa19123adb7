import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from admission.config import settings
from admission.constants import CandidateStatus
from admission.errors import InvalidState, NotFound
from admission.models.candidate import Candidate
from admission.models.credential import TemporaryCredential
from admission.models.document import DocumentRecord
from admission.services.document_service import ensure_record
from admission.utils.clock import utcnow
from admission.utils.security import generate_password
from admission.utils.text import only_digits

logger = logging.getLogger(__name__)


@dataclass
class IssuedCredentials:
    candidate: Candidate
    record: DocumentRecord
    cpf: str
    password: str
    new_password: bool
    new_record: bool


def issue_credentials(db: Session, candidate_id: int) -> IssuedCredentials:
    """Give an approved candidate access to the document portal.

    Re-issuing while the current password is still active and unexpired
    returns that same password.
    """
    candidate = db.get(Candidate, candidate_id)
    if candidate is None or candidate.erased_at is not None:
        raise NotFound("Candidato não encontrado")
    if candidate.status != CandidateStatus.APPROVED.value:
        raise InvalidState("Candidato precisa estar aprovado para gerar credenciais")

    now = utcnow()
    cpf = only_digits(candidate.cpf)

    current = (
        db.query(TemporaryCredential)
        .filter(
            TemporaryCredential.candidate_id == candidate.id,
            TemporaryCredential.active.is_(True),
            TemporaryCredential.expires_at > now,
        )
        .order_by(TemporaryCredential.created_at.desc(), TemporaryCredential.id.desc())
        .first()
    )

    if current is not None:
        password = current.password
        new_password = False
    else:
        # Only one credential set may be active per candidate.
        db.query(TemporaryCredential).filter(
            TemporaryCredential.candidate_id == candidate.id,
        ).update({TemporaryCredential.active: False}, synchronize_session=False)
        password = generate_password(settings.password_length)
        db.add(TemporaryCredential(
            candidate_id=candidate.id,
            cpf=cpf,
            password=password,
            expires_at=now + timedelta(days=settings.credential_ttl_days),
            active=True,
            created_at=now,
        ))
        new_password = True

    record, new_record = ensure_record(db, candidate.id)
    db.commit()
    db.refresh(record)

    logger.info(
        "Credentials issued for candidate %s (new password: %s, new record: %s)",
        candidate.id, new_password, new_record,
    )
    return IssuedCredentials(
        candidate=candidate,
        record=record,
        cpf=cpf,
        password=password,
        new_password=new_password,
        new_record=new_record,
    )
