import logging

from sqlalchemy.orm import Session

from admission.constants import CandidateStatus, DocumentType, RecordStatus, ReviewAction
from admission.errors import InvalidState, NotFound, ValidationFailed
from admission.models.document import DocumentRecord
from admission.services import outbox
from admission.services.document_service import completeness, document_status_map, ethnicity_summary
from admission.utils.clock import isoformat, utcnow

logger = logging.getLogger(__name__)


def _parse_action(action: str | None, reason: str | None) -> tuple[ReviewAction, str | None]:
    try:
        parsed = ReviewAction(action)
    except ValueError:
        raise ValidationFailed(
            "Ação inválida",
            ["A ação deve ser 'aprovar' ou 'rejeitar'."],
        ) from None
    reason = (reason or "").strip() or None
    if parsed == ReviewAction.REJECT and reason is None:
        raise ValidationFailed(
            "Motivo da rejeição é obrigatório",
            ["Informe o motivo da rejeição."],
        )
    return parsed, reason


def _get_record(db: Session, record_id: int) -> DocumentRecord:
    record = db.get(DocumentRecord, record_id)
    if record is None:
        raise NotFound("Registro de documentos não encontrado")
    return record


def _apply(slot, action: ReviewAction, reason: str | None):
    if action == ReviewAction.APPROVE:
        slot.validated = True
        slot.rejected = False
        slot.rejection_reason = None
    else:
        slot.validated = False
        slot.rejected = True
        slot.rejection_reason = reason


def list_records(db: Session, status: str | None = None) -> list[dict]:
    query = db.query(DocumentRecord)
    if status:
        query = query.filter(DocumentRecord.status == status)
    records = query.order_by(
        DocumentRecord.last_upload_at.desc().nullslast(), DocumentRecord.id.desc(),
    ).all()

    items = []
    for record in records:
        candidate = record.candidate
        items.append({
            "id": record.id,
            "candidato_id": candidate.id,
            "candidato_nome": candidate.nome,
            "candidato_email": candidate.email,
            "candidato_telefone": candidate.telefone,
            "vaga_titulo": candidate.job_title,
            "status": record.status,
            "documentos": document_status_map(record),
            "dependentes": list(record.dependents or []),
            "autodeclaracao": ethnicity_summary(record),
            "comprovante_residencia_data_emissao": (
                record.residency_issue_date.isoformat() if record.residency_issue_date else None
            ),
            "completude": completeness(record),
            "data_primeiro_upload": isoformat(record.first_upload_at),
            "data_ultimo_upload": isoformat(record.last_upload_at),
            "data_conclusao": isoformat(record.completed_at),
            "data_revisao": isoformat(record.reviewed_at),
        })
    return items


def validate_document(db: Session, record_id: int, document_type: str, action: str | None,
                      reason: str | None = None) -> ReviewAction:
    """Approve or reject one slot. The record's overall status is left alone."""
    parsed, reason = _parse_action(action, reason)
    try:
        code = DocumentType(document_type)
    except ValueError:
        raise ValidationFailed(
            "Tipo de documento inválido",
            [f"Tipo de documento desconhecido: {document_type}"],
        ) from None

    record = _get_record(db, record_id)
    slot = record.slot(code)
    if slot is None or not slot.url:
        raise InvalidState("Documento ainda não foi enviado pelo candidato")

    _apply(slot, parsed, reason)
    db.commit()
    logger.info("Record %s: %s %s", record.id, code.value, parsed.value)
    return parsed


def validate_all_documents(db: Session, record_id: int, action: str | None,
                           reason: str | None = None) -> tuple[ReviewAction, int, list[int]]:
    """Apply one decision to every uploaded slot and close the review.

    Returns (action, slots updated, queued outbox task ids).
    """
    parsed, reason = _parse_action(action, reason)
    record = _get_record(db, record_id)
    if record.status == RecordStatus.APPROVED.value:
        raise InvalidState("Documentos já foram aprovados")

    updated = 0
    for slot in record.slots:
        if not slot.url:
            continue
        _apply(slot, parsed, reason)
        updated += 1

    now = utcnow()
    candidate = record.candidate
    if parsed == ReviewAction.APPROVE:
        record.status = RecordStatus.APPROVED.value
        candidate.status = CandidateStatus.DOCUMENTS_APPROVED.value
    else:
        record.status = RecordStatus.REJECTED.value
        candidate.status = CandidateStatus.DOCUMENTS_REJECTED.value
    record.reviewed_at = now
    candidate.updated_at = now

    task_ids = []
    if parsed == ReviewAction.APPROVE:
        task = outbox.enqueue(db, outbox.COPY_DOCUMENTS_FOR_ADMISSION, {"candidate_id": candidate.id})
        task_ids.append(task.id)

    db.commit()
    logger.info("Record %s reviewed in bulk: %s (%s slot(s))", record.id, parsed.value, updated)
    return parsed, updated, task_ids
