"""
Per-candidate admission document record.

Owns the document slots, the completeness rule and the status moves the
candidate-facing flow is allowed to make:

  pendente ──(complete)──▶ documentos_enviados ──(HR)──▶ aprovado | rejeitado
  rejeitado ──(complete again after a re-upload)──▶ documentos_enviados

Every upload is validated before anything is stored or written, so a
rejected file never leaves a trace in the record.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path

from sqlalchemy.orm import Session

from admission.config import settings
from admission.constants import (
    MANDATORY_DOCUMENTS,
    CandidateStatus,
    DocumentType,
    Ethnicity,
    RecordStatus,
)
from admission.errors import InvalidState, NotFound, ValidationFailed
from admission.models.candidate import Candidate
from admission.models.document import DocumentRecord, DocumentSlot
from admission.services import outbox
from admission.services.image_quality import (
    ImageQualityValidator,
    QualityResult,
    photo_thresholds,
)
from admission.services.photo_normalizer import normalize_photo
from admission.services.residency_ocr import OcrEngine, ResidencyCheck, validate_residency_proof
from admission.services.storage import BlobStorage, StorageConstraints
from admission.utils.clock import isoformat, utcnow
from admission.utils.security import declaration_hash, generate_token

logger = logging.getLogger(__name__)

DOCUMENTS_FOLDER = "documentos"
UPLOAD_EXTENSIONS = ("jpg", "jpeg", "png", "pdf", "webp")


@dataclass
class UploadOutcome:
    url: str
    document_type: str
    quality: QualityResult
    completeness: dict
    residency: ResidencyCheck | None = None
    dimensions: dict | None = None
    task_ids: list[int] = field(default_factory=list)


# --- Record lifecycle ---


def ensure_record(db: Session, candidate_id: int) -> tuple[DocumentRecord, bool]:
    """Return the candidate's record, creating it on first use. The caller commits."""
    record = db.query(DocumentRecord).filter(DocumentRecord.candidate_id == candidate_id).first()
    if record is not None:
        return record, False

    now = utcnow()
    record = DocumentRecord(
        candidate_id=candidate_id,
        access_token=generate_token(),
        token_expires_at=now + timedelta(days=settings.access_token_ttl_days),
        status=RecordStatus.PENDING.value,
        dependents=[],
        created_at=now,
    )
    db.add(record)
    db.flush()
    logger.info("Document record %s created for candidate %s", record.id, candidate_id)
    return record, True


def get_candidate(db: Session, candidate_id: int) -> Candidate:
    candidate = db.get(Candidate, candidate_id)
    if candidate is None or candidate.erased_at is not None:
        raise NotFound("Candidato não encontrado")
    return candidate


def get_record_by_access_token(db: Session, token: str) -> DocumentRecord:
    record = db.query(DocumentRecord).filter(DocumentRecord.access_token == token).first()
    if record is None:
        raise NotFound("Link inválido ou expirado")
    if record.token_expires_at is not None and record.token_expires_at < utcnow():
        raise InvalidState("Link expirado. Entre em contato com o RH.")
    return record


def is_complete(record: DocumentRecord) -> bool:
    return completeness(record)["completo"]


def completeness(record: DocumentRecord) -> dict:
    missing = []
    for document_type in MANDATORY_DOCUMENTS:
        slot = record.slot(document_type)
        if slot is None or not slot.url:
            missing.append(document_type.value)
    declared = record.ethnicity is not None
    return {
        "documentos_enviados": len(MANDATORY_DOCUMENTS) - len(missing),
        "total_obrigatorios": len(MANDATORY_DOCUMENTS),
        "documentos_faltando": missing,
        "autodeclaracao_enviada": declared,
        "completo": not missing and declared,
    }


def document_status_map(record: DocumentRecord) -> dict:
    documents = {}
    for document_type in DocumentType:
        slot = record.slot(document_type)
        documents[document_type.value] = {
            "url": slot.url if slot else None,
            "validado": bool(slot and slot.validated),
            "rejeitado": bool(slot and slot.rejected),
            "motivo_rejeicao": slot.rejection_reason if slot else None,
            "data_upload": isoformat(slot.uploaded_at) if slot else None,
            "obrigatorio": document_type in MANDATORY_DOCUMENTS,
        }
    return documents


def ethnicity_summary(record: DocumentRecord) -> dict | None:
    if record.ethnicity is None:
        return None
    return {
        "raca": record.ethnicity,
        "hashVerificacao": record.ethnicity_hash,
        "data_declaracao": isoformat(record.ethnicity_declared_at),
    }


def portal_data(db: Session, candidate_id: int) -> dict:
    """Everything the candidate portal shows after login."""
    candidate = get_candidate(db, candidate_id)
    record, created = ensure_record(db, candidate.id)
    if created:
        db.commit()
    return {
        "success": True,
        "candidato": {
            "id": candidate.id,
            "nome": candidate.nome,
            "email": candidate.email,
            "telefone": candidate.telefone,
            "cpf": candidate.cpf,
            "vaga": candidate.job_title,
        },
        "status": record.status,
        "documentos": document_status_map(record),
        "dependentes": list(record.dependents or []),
        "autodeclaracao": ethnicity_summary(record),
        "completude": completeness(record),
    }


def _refresh_status(db: Session, record: DocumentRecord, candidate: Candidate) -> tuple[dict, list[int]]:
    """Recompute completeness and move to documentos_enviados when it was just reached."""
    summary = completeness(record)
    task_ids = []
    reopenable = (RecordStatus.PENDING.value, RecordStatus.REJECTED.value)
    if summary["completo"] and record.status in reopenable:
        now = utcnow()
        record.status = RecordStatus.SUBMITTED.value
        record.completed_at = now
        candidate.status = CandidateStatus.DOCUMENTS_SUBMITTED.value
        candidate.updated_at = now
        task = outbox.enqueue(db, outbox.NOTIFY_HR_DOCUMENTS_COMPLETE, {"candidate_id": candidate.id})
        task_ids.append(task.id)
        logger.info("Candidate %s completed the admission documents", candidate.id)
    return summary, task_ids


def _assert_open(record: DocumentRecord | None):
    if record is not None and record.status == RecordStatus.APPROVED.value:
        raise InvalidState("Documentos já aprovados pelo RH; não é possível alterá-los")


def _check_quality(data: bytes, validator: ImageQualityValidator) -> QualityResult:
    quality = validator.evaluate(data)
    if not quality.is_valid:
        logger.info("Upload rejected by quality gate: %s", quality.issues)
        raise ValidationFailed(
            "Imagem rejeitada",
            quality.issues,
            {"detalhes": quality.details, "qualidade": quality.to_dict()},
        )
    return quality


def _upload_constraints() -> StorageConstraints:
    return StorageConstraints(max_bytes=settings.max_upload_bytes, allowed_extensions=UPLOAD_EXTENSIONS)


def _stored_name(document_type: str, filename: str | None, default_ext: str = ".jpg") -> str:
    ext = Path(filename or "").suffix.lower() or default_ext
    return f"{document_type}{ext}"


def _store_slot(record: DocumentRecord, document_type: str, url: str):
    now = utcnow()
    slot = record.slot(document_type)
    if slot is None:
        slot = DocumentSlot(document_type=document_type)
        record.slots.append(slot)
    slot.url = url
    slot.validated = False
    slot.rejected = False
    slot.rejection_reason = None
    slot.uploaded_at = now
    record.last_upload_at = now
    if record.first_upload_at is None:
        record.first_upload_at = now


# --- Uploads ---


def upload_document(db: Session, candidate_id: int, document_type: DocumentType, data: bytes,
                    filename: str | None, storage: BlobStorage, ocr_engine: OcrEngine,
                    validator: ImageQualityValidator | None = None,
                    today: date | None = None) -> UploadOutcome:
    if document_type == DocumentType.PHOTO:
        return upload_photo(db, candidate_id, data, storage)

    candidate = get_candidate(db, candidate_id)
    existing = db.query(DocumentRecord).filter(DocumentRecord.candidate_id == candidate.id).first()
    _assert_open(existing)

    stored_name = _stored_name(document_type.value, filename)
    constraints = _upload_constraints()
    constraints.check(data, stored_name)
    quality = _check_quality(data, validator or ImageQualityValidator())

    residency = None
    if document_type == DocumentType.RESIDENCY_PROOF:
        residency = validate_residency_proof(
            ocr_engine, data, candidate.nome,
            language=settings.ocr_language,
            today=today,
            max_age_days=settings.residency_max_age_days,
        )
        if not residency.is_valid:
            raise ValidationFailed(
                "Comprovante de residência inválido",
                residency.issues,
                {
                    "dataEmissao": residency.to_dict()["dataEmissao"],
                    "diasAtras": residency.days_ago,
                    "tipoComprovante": residency.to_dict()["tipoComprovante"],
                },
            )

    url = storage.store(
        data,
        f"{DOCUMENTS_FOLDER}/{candidate.id}",
        stored_name,
        constraints,
    )

    record, _ = ensure_record(db, candidate.id)
    _store_slot(record, document_type.value, url)
    if residency is not None:
        record.residency_issue_date = residency.issue_date

    summary, task_ids = _refresh_status(db, record, candidate)
    db.commit()
    logger.info("Candidate %s uploaded %s", candidate.id, document_type.value)

    return UploadOutcome(
        url=url,
        document_type=document_type.value,
        quality=quality,
        completeness=summary,
        residency=residency,
        task_ids=task_ids,
    )


def upload_photo(db: Session, candidate_id: int, data: bytes, storage: BlobStorage) -> UploadOutcome:
    """ID photo: normalized to the portrait canvas first, then validated and stored."""
    candidate = get_candidate(db, candidate_id)
    existing = db.query(DocumentRecord).filter(DocumentRecord.candidate_id == candidate.id).first()
    _assert_open(existing)

    photo = normalize_photo(
        data,
        width=settings.photo_width,
        height=settings.photo_height,
        quality=settings.photo_jpeg_quality,
    )
    validator = ImageQualityValidator(
        photo_thresholds(settings.photo_width, settings.photo_height, settings.photo_min_bytes)
    )
    quality = _check_quality(photo.data, validator)

    code = DocumentType.PHOTO.value
    url = storage.store(photo.data, f"{DOCUMENTS_FOLDER}/{candidate.id}", f"{code}.jpg",
                        _upload_constraints())

    record, _ = ensure_record(db, candidate.id)
    _store_slot(record, code, url)
    summary, task_ids = _refresh_status(db, record, candidate)
    db.commit()
    logger.info("Candidate %s uploaded the ID photo", candidate.id)

    return UploadOutcome(
        url=url,
        document_type=code,
        quality=quality,
        completeness=summary,
        dimensions={"largura": photo.width, "altura": photo.height},
        task_ids=task_ids,
    )


def add_dependent(db: Session, candidate_id: int, nome: str, idade: int,
                  certificate: tuple[bytes, str | None], storage: BlobStorage,
                  tax_id: tuple[bytes, str | None] | None = None,
                  validator: ImageQualityValidator | None = None) -> dict:
    """Attach a dependent's birth certificate (and optionally CPF) to the record."""
    nome = (nome or "").strip()
    if not nome:
        raise ValidationFailed("Nome do dependente é obrigatório", ["Informe o nome do dependente."])
    if idade is None or idade < 0 or idade > 120:
        raise ValidationFailed("Idade inválida", ["Informe uma idade válida para o dependente."])

    candidate = get_candidate(db, candidate_id)
    existing = db.query(DocumentRecord).filter(DocumentRecord.candidate_id == candidate.id).first()
    _assert_open(existing)

    constraints = _upload_constraints()
    certificate_name = _stored_name(DocumentType.DEPENDENT_BIRTH_CERTIFICATE.value, certificate[1])
    constraints.check(certificate[0], certificate_name)
    if tax_id is not None:
        tax_id_name = _stored_name(DocumentType.DEPENDENT_TAX_ID.value, tax_id[1])
        constraints.check(tax_id[0], tax_id_name)

    validator = validator or ImageQualityValidator()
    _check_quality(certificate[0], validator)
    if tax_id is not None:
        _check_quality(tax_id[0], validator)

    folder = f"{DOCUMENTS_FOLDER}/{candidate.id}/dependentes"
    certificate_url = storage.store(certificate[0], folder, certificate_name, constraints)
    tax_id_url = None
    if tax_id is not None:
        tax_id_url = storage.store(tax_id[0], folder, tax_id_name, constraints)

    record, _ = ensure_record(db, candidate.id)
    now = utcnow()
    dependent = {
        "nome": nome,
        "idade": idade,
        "certidao_url": certificate_url,
        "cpf_url": tax_id_url,
        "data_upload": isoformat(now),
    }
    # JSON columns only notice reassignment, not in-place appends.
    record.dependents = [*(record.dependents or []), dependent]
    record.last_upload_at = now
    if record.first_upload_at is None:
        record.first_upload_at = now
    db.commit()
    logger.info("Candidate %s added dependent documents", candidate.id)
    return dependent


# --- Ethnicity self-declaration ---


def submit_ethnicity_declaration(db: Session, candidate_id: int, raca: str | None,
                                 aceite_termos: bool, ip: str | None = None,
                                 user_agent: str | None = None) -> tuple[str, dict, list[int]]:
    """Record the declaration; returns (verification hash, completeness, queued task ids)."""
    if not aceite_termos:
        raise ValidationFailed(
            "É necessário aceitar os termos",
            ["Você precisa aceitar os termos da autodeclaração."],
        )
    valid_values = {e.value for e in Ethnicity}
    if raca not in valid_values:
        raise ValidationFailed(
            "Opção de raça/cor inválida",
            [f"Escolha uma das opções: {', '.join(sorted(valid_values))}."],
        )

    candidate = get_candidate(db, candidate_id)
    record, _ = ensure_record(db, candidate.id)
    _assert_open(record)

    now = utcnow()
    verification = declaration_hash(
        settings.declaration_secret, candidate.id, candidate.cpf, raca, isoformat(now),
    )

    record.ethnicity = raca
    record.ethnicity_hash = verification
    record.ethnicity_ip = ip
    record.ethnicity_user_agent = user_agent
    record.ethnicity_declared_at = now
    candidate.raca = raca
    candidate.updated_at = now

    summary, task_ids = _refresh_status(db, record, candidate)
    db.commit()
    logger.info("Candidate %s submitted the ethnicity self-declaration", candidate.id)
    return verification, summary, task_ids


def verify_ethnicity_declaration(db: Session, verification_hash: str) -> dict:
    record = (
        db.query(DocumentRecord)
        .filter(DocumentRecord.ethnicity_hash == (verification_hash or "").strip().upper())
        .first()
    )
    if record is None:
        raise NotFound("Autodeclaração não encontrada")
    candidate = record.candidate
    return {
        "valido": True,
        "nome": candidate.nome,
        "vaga": candidate.job_title,
        "raca": record.ethnicity,
        "data_declaracao": isoformat(record.ethnicity_declared_at),
    }
