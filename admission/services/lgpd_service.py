"""
Data-subject requests under the LGPD: export or erase a candidate's data.

  solicitar ──▶ pendente ──(emailed code)──▶ em_analise ──(HR)──▶ concluida | rejeitada
  solicitar (no matching candidate) ──▶ aguardando_aprovacao_rh ──(HR)──▶ email_nao_encontrado | rejeitada

Erasure anonymizes the candidate rows instead of deleting them so the
request trail stays auditable; documents, dependents, credentials and
stored files are removed outright.
"""

import hashlib
import hmac
import logging
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from admission.config import settings
from admission.constants import LGPD_OPEN_STATUSES, LgpdRequestType, LgpdStatus
from admission.errors import InvalidState, NotFound, TooManyAttempts, ValidationFailed
from admission.models.candidate import Candidate
from admission.models.document import DocumentRecord
from admission.models.lgpd import DataSubjectRequest
from admission.models.session import CandidateSession
from admission.services.document_service import document_status_map, ethnicity_summary
from admission.services.notifications import (
    EMAIL,
    DeliveryResult,
    NotificationDispatcher,
    lgpd_code_message,
    lgpd_confirmed_message,
    lgpd_email_not_found_message,
    lgpd_erasure_message,
    lgpd_export_message,
)
from admission.services.storage import BlobStorage
from admission.services.throttle_service import (
    get_throttle_delay,
    record_failed_attempt,
    reset_failed_attempts,
)
from admission.utils.clock import isoformat, utcnow
from admission.utils.security import generate_verification_code

logger = logging.getLogger(__name__)

ERASED_TEXT = "Excluído"


def protocol(request_id: int) -> str:
    return f"LGPD-{request_id:06d}"


def request_to_dict(request: DataSubjectRequest) -> dict:
    candidate = request.candidate
    return {
        "id": request.id,
        "protocolo": protocol(request.id),
        "tipo": request.tipo,
        "status": request.status,
        "email_solicitante": request.email,
        "telefone_solicitante": request.telefone,
        "candidato_id": request.candidate_id,
        "candidato_nome": candidate.nome if candidate else None,
        "codigo_validado": request.code_validated_at is not None,
        "data_validacao_codigo": isoformat(request.code_validated_at),
        "aprovado_por": request.handled_by,
        "aprovado_por_nome": request.handler.nome if request.handler else None,
        "observacoes": request.notes,
        "motivo_rejeicao": request.rejection_reason,
        "hash_comprovante": request.receipt_hash,
        "data_conclusao": isoformat(request.completed_at),
        "created_at": isoformat(request.created_at),
        "updated_at": isoformat(request.updated_at),
    }


def get_request(db: Session, request_id: int) -> DataSubjectRequest:
    request = db.get(DataSubjectRequest, request_id)
    if request is None:
        raise NotFound("Solicitação não encontrada")
    return request


def _find_candidate(db: Session, email: str) -> Candidate | None:
    return (
        db.query(Candidate)
        .filter(func.lower(Candidate.email) == email, Candidate.erased_at.is_(None))
        .order_by(Candidate.created_at.desc(), Candidate.id.desc())
        .first()
    )


def _conclude(request: DataSubjectRequest, status: LgpdStatus, hr_user_id: int | None):
    now = utcnow()
    request.status = status.value
    request.handled_by = hr_user_id
    request.completed_at = now
    request.updated_at = now


# --- Public side ---


def create_request(db: Session, dispatcher: NotificationDispatcher, email: str, tipo: str,
                   telefone: str | None = None, ip: str | None = None,
                   user_agent: str | None = None) -> tuple[DataSubjectRequest, DeliveryResult]:
    email = (email or "").strip().lower()
    if not email or not tipo:
        raise ValidationFailed("Email e tipo de solicitação são obrigatórios")
    if tipo not in {t.value for t in LgpdRequestType}:
        raise ValidationFailed('Tipo inválido. Use "exportacao" ou "exclusao"')

    now = utcnow()
    in_flight = (
        db.query(DataSubjectRequest)
        .filter(
            DataSubjectRequest.email == email,
            DataSubjectRequest.tipo == tipo,
            DataSubjectRequest.status.in_(LGPD_OPEN_STATUSES),
            DataSubjectRequest.created_at > now - timedelta(hours=settings.lgpd_request_cooldown_hours),
        )
        .first()
    )
    if in_flight is not None:
        raise InvalidState(
            "Você já possui uma solicitação em andamento. "
            f"Aguarde até {settings.lgpd_request_cooldown_hours}h para nova solicitação."
        )

    candidate = _find_candidate(db, email)
    request = DataSubjectRequest(
        candidate_id=candidate.id if candidate else None,
        tipo=tipo,
        email=email,
        telefone=telefone,
        ip=ip,
        user_agent=user_agent,
        verification_code=generate_verification_code(),
        code_sent_at=now,
        status=(LgpdStatus.PENDING if candidate else LgpdStatus.AWAITING_HR).value,
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info("LGPD %s request %s filed (candidate %s)", tipo, request.id, request.candidate_id)

    delivery = dispatcher.send(EMAIL, email, lgpd_code_message(
        protocol(request.id), tipo, request.verification_code,
        candidate.nome if candidate else None, settings.lgpd_code_ttl_minutes,
    ))
    return request, delivery


def validate_code(db: Session, dispatcher: NotificationDispatcher, request_id: int,
                  code: str) -> DataSubjectRequest:
    request = db.get(DataSubjectRequest, request_id)
    if request is None or request.status != LgpdStatus.PENDING.value or request.candidate is None:
        raise NotFound("Solicitação não encontrada ou já foi processada")

    throttle_key = f"lgpd_code:{request.id}"
    delay = get_throttle_delay(db, throttle_key)
    if delay > 0:
        raise TooManyAttempts(delay)

    if utcnow() - request.code_sent_at > timedelta(minutes=settings.lgpd_code_ttl_minutes):
        raise ValidationFailed("Código expirado. Solicite um novo código.")
    if not hmac.compare_digest((code or "").strip().encode(), request.verification_code.encode()):
        record_failed_attempt(db, throttle_key)
        raise ValidationFailed("Código inválido")
    reset_failed_attempts(db, throttle_key)

    now = utcnow()
    request.code_validated_at = now
    request.status = LgpdStatus.IN_REVIEW.value
    request.updated_at = now
    db.commit()
    logger.info("LGPD request %s confirmed by the data subject", request.id)

    dispatcher.send(EMAIL, request.candidate.email, lgpd_confirmed_message(
        protocol(request.id), request.tipo, request.candidate.nome,
    ))
    return request


# --- HR side ---


def list_requests(db: Session, status: str | None = None, tipo: str | None = None,
                  limit: int = 50) -> list[DataSubjectRequest]:
    query = db.query(DataSubjectRequest)
    if status:
        query = query.filter(DataSubjectRequest.status == status)
    if tipo:
        query = query.filter(DataSubjectRequest.tipo == tipo)
    return (
        query.order_by(DataSubjectRequest.created_at.desc(), DataSubjectRequest.id.desc())
        .limit(limit)
        .all()
    )


def _confirmed_request(db: Session, request_id: int, tipo: LgpdRequestType) -> DataSubjectRequest:
    request = db.get(DataSubjectRequest, request_id)
    if request is None or request.tipo != tipo.value or request.candidate is None:
        label = "exportação" if tipo == LgpdRequestType.EXPORT else "exclusão"
        raise NotFound(f"Solicitação de {label} não encontrada")
    if request.status != LgpdStatus.IN_REVIEW.value:
        raise InvalidState(f"Solicitação está em '{request.status}', não em análise")
    return request


def _applications(db: Session, candidate: Candidate) -> list[Candidate]:
    """Every application by the same person: same CPF, or same email as a fallback."""
    return (
        db.query(Candidate)
        .filter(
            (Candidate.cpf == candidate.cpf) | (func.lower(Candidate.email) == candidate.email.lower()),
            Candidate.erased_at.is_(None),
        )
        .order_by(Candidate.id)
        .all()
    )


def _documents_export(record: DocumentRecord | None) -> dict | None:
    if record is None:
        return None
    return {
        "status": record.status,
        "documentos": document_status_map(record),
        "dependentes": list(record.dependents or []),
        "autodeclaracao": ethnicity_summary(record),
        "primeiro_envio": isoformat(record.first_upload_at),
        "ultimo_envio": isoformat(record.last_upload_at),
    }


def export_data(db: Session, dispatcher: NotificationDispatcher, request_id: int,
                hr_user_id: int | None) -> dict:
    request = _confirmed_request(db, request_id, LgpdRequestType.EXPORT)
    candidate = request.candidate

    data = {
        "protocolo": protocol(request.id),
        "data_exportacao": isoformat(utcnow()),
        "dados_pessoais": {
            "nome": candidate.nome,
            "email": candidate.email,
            "telefone": candidate.telefone,
            "data_nascimento": candidate.data_nascimento,
            "cpf": candidate.cpf,
            "cidade": candidate.cidade,
            "estado": candidate.estado,
            "bairro": candidate.bairro,
            "raca": candidate.raca,
        },
        "candidaturas": [
            {
                "id": application.id,
                "vaga_id": application.job_posting_id,
                "vaga_titulo": application.job_title,
                "status": application.status,
                "curriculo_url": application.curriculo_url,
                "data_candidatura": isoformat(application.created_at),
                "documentos_admissao": _documents_export(application.document_record),
            }
            for application in _applications(db, candidate)
        ],
    }

    _conclude(request, LgpdStatus.COMPLETED, hr_user_id)
    request.notes = "Dados exportados"
    db.commit()
    logger.info("LGPD request %s: exported data of candidate %s", request.id, candidate.id)

    dispatcher.send(EMAIL, request.email, lgpd_export_message(protocol(request.id), candidate.nome))
    return data


def _blob_urls(record: DocumentRecord | None) -> list[str]:
    if record is None:
        return []
    urls = [slot.url for slot in record.slots if slot.url]
    for dependent in record.dependents or []:
        urls += [dependent.get("certidao_url"), dependent.get("cpf_url")]
    return [u for u in urls if u]


def _anonymize(db: Session, candidate: Candidate, reason: str, now) -> list[str]:
    """Scrub one application in place; returns the blob URLs left to delete."""
    urls = _blob_urls(candidate.document_record)
    if candidate.curriculo_url:
        urls.append(candidate.curriculo_url)
    if candidate.document_record is not None:
        db.delete(candidate.document_record)
    candidate.credentials.clear()
    db.query(CandidateSession).filter(CandidateSession.candidate_id == candidate.id).delete(
        synchronize_session=False
    )

    candidate.nome = f"Usuário Excluído #{candidate.id}"
    candidate.email = f"excluido_{candidate.id}@anonimo.invalid"
    candidate.cpf = f"anon-{candidate.id}"
    candidate.telefone = None
    candidate.data_nascimento = None
    candidate.cidade = ERASED_TEXT
    candidate.estado = "XX"
    candidate.bairro = ERASED_TEXT
    candidate.curriculo_url = None
    candidate.raca = None
    candidate.admission_export = None
    candidate.erased_at = now
    candidate.erasure_reason = reason
    candidate.updated_at = now
    return urls


def erase_data(db: Session, dispatcher: NotificationDispatcher, storage: BlobStorage,
               request_id: int, hr_user_id: int | None, reason: str | None = None) -> dict:
    request = _confirmed_request(db, request_id, LgpdRequestType.ERASURE)
    candidate = request.candidate
    reason = (reason or "").strip() or "Solicitação do titular via LGPD"

    now = utcnow()
    urls = []
    for application in _applications(db, candidate):
        urls += _anonymize(db, application, reason, now)

    receipt_hash = hashlib.sha256(f"{request.id}-{candidate.id}-{isoformat(now)}".encode()).hexdigest()
    _conclude(request, LgpdStatus.COMPLETED, hr_user_id)
    request.notes = reason
    request.receipt_hash = receipt_hash
    db.commit()

    # Files go only after the rows are gone, so a failed commit keeps them reachable.
    removed = 0
    for url in urls:
        try:
            removed += storage.delete(url)
        except OSError as exc:
            logger.warning("Could not delete blob %s: %s", url, exc)
    logger.info("LGPD request %s: candidate %s anonymized, %s file(s) removed",
                request.id, candidate.id, removed)

    dispatcher.send(EMAIL, request.email, lgpd_erasure_message(
        protocol(request.id),
        request.created_at.strftime("%d/%m/%Y %H:%M UTC"),
        now.strftime("%d/%m/%Y %H:%M UTC"),
        receipt_hash,
    ))
    return {
        "protocolo": protocol(request.id),
        "hash_comprovante": receipt_hash,
        "data_conclusao": isoformat(now),
        "arquivos_removidos": removed,
    }


def reject_request(db: Session, request_id: int, hr_user_id: int | None, reason: str) -> DataSubjectRequest:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("Motivo da rejeição é obrigatório")
    request = get_request(db, request_id)
    if request.status not in LGPD_OPEN_STATUSES:
        raise InvalidState("Solicitação já foi finalizada")
    _conclude(request, LgpdStatus.REJECTED, hr_user_id)
    request.rejection_reason = reason
    db.commit()
    logger.info("LGPD request %s rejected", request.id)
    return request


def notify_email_not_found(db: Session, dispatcher: NotificationDispatcher, request_id: int,
                           hr_user_id: int | None) -> DeliveryResult:
    request = get_request(db, request_id)
    if request.candidate_id is not None:
        raise InvalidState(
            "Esta solicitação possui um candidato associado. Use a função de exclusão normal."
        )
    if request.status not in LGPD_OPEN_STATUSES:
        raise InvalidState("Solicitação já foi finalizada")

    delivery = dispatcher.send(EMAIL, request.email, lgpd_email_not_found_message(
        protocol(request.id), request.tipo, request.email,
    ))
    _conclude(request, LgpdStatus.EMAIL_NOT_FOUND, hr_user_id)
    request.notes = "Email não encontrado na base de dados. Solicitante notificado."
    db.commit()
    logger.info("LGPD request %s: requester told the email is unknown", request.id)
    return delivery
