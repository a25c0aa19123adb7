"""Enumerations and fixed vocabularies shared across the admission flow."""

from enum import Enum


class DocumentType(str, Enum):
    PHOTO = "foto_3x4"
    WORK_RECORD = "ctps_digital"
    ID_FRONT = "identidade_frente"
    ID_BACK = "identidade_verso"
    RESIDENCY_PROOF = "comprovante_residencia"
    BIRTH_OR_MARRIAGE_CERTIFICATE = "certidao_nascimento_casamento"
    MILITARY_RECORD = "reservista"
    VOTER_TITLE = "titulo_eleitor"
    CRIMINAL_RECORD = "antecedentes_criminais"
    DEPENDENT_BIRTH_CERTIFICATE = "certidao_nascimento_dependente"
    DEPENDENT_TAX_ID = "cpf_dependente"


MANDATORY_DOCUMENTS: tuple[DocumentType, ...] = (
    DocumentType.PHOTO,
    DocumentType.WORK_RECORD,
    DocumentType.ID_FRONT,
    DocumentType.ID_BACK,
    DocumentType.RESIDENCY_PROOF,
    DocumentType.BIRTH_OR_MARRIAGE_CERTIFICATE,
    DocumentType.VOTER_TITLE,
    DocumentType.CRIMINAL_RECORD,
)

# Field names used by the external admission system for each slot.
ADMISSION_EXPORT_FIELDS: dict[DocumentType, str] = {
    DocumentType.PHOTO: "foto_url",
    DocumentType.WORK_RECORD: "carteira_trabalho_url",
    DocumentType.ID_FRONT: "rg_frente_url",
    DocumentType.ID_BACK: "rg_verso_url",
    DocumentType.RESIDENCY_PROOF: "comprovante_residencia_url",
    DocumentType.BIRTH_OR_MARRIAGE_CERTIFICATE: "certidao_nascimento_casamento_url",
    DocumentType.MILITARY_RECORD: "certificado_reservista_url",
    DocumentType.VOTER_TITLE: "titulo_eleitor_url",
    DocumentType.CRIMINAL_RECORD: "antecedentes_criminais_url",
    DocumentType.DEPENDENT_BIRTH_CERTIFICATE: "certidao_dependente_url",
    DocumentType.DEPENDENT_TAX_ID: "cpf_dependente_url",
}


class Ethnicity(str, Enum):
    WHITE = "branca"
    BLACK = "preta"
    BROWN = "parda"
    YELLOW = "amarela"
    INDIGENOUS = "indigena"
    UNDECLARED = "nao_declarar"


class RecordStatus(str, Enum):
    PENDING = "pendente"
    SUBMITTED = "documentos_enviados"
    APPROVED = "aprovado"
    REJECTED = "rejeitado"


class CandidateStatus(str, Enum):
    NEW = "novo"
    IN_REVIEW = "em_analise"
    APPROVED = "aprovado"
    REJECTED = "reprovado"
    DOCUMENTS_SUBMITTED = "documentos_enviados"
    DOCUMENTS_APPROVED = "documentos_aprovados"
    DOCUMENTS_REJECTED = "documentos_rejeitados"
    TALENT_POOL = "banco_talentos"


# Statuses HR may set by hand; the documentos_* values are owned by the admission flow.
MANUAL_CANDIDATE_STATUSES = {
    CandidateStatus.NEW.value,
    CandidateStatus.IN_REVIEW.value,
    CandidateStatus.APPROVED.value,
    CandidateStatus.REJECTED.value,
    CandidateStatus.TALENT_POOL.value,
}


class ReviewAction(str, Enum):
    APPROVE = "aprovar"
    REJECT = "rejeitar"


class LgpdRequestType(str, Enum):
    EXPORT = "exportacao"
    ERASURE = "exclusao"


class LgpdStatus(str, Enum):
    PENDING = "pendente"  # waiting for the emailed code
    IN_REVIEW = "em_analise"  # code confirmed, waiting for HR
    AWAITING_HR = "aguardando_aprovacao_rh"  # no candidate matched the email
    COMPLETED = "concluida"
    REJECTED = "rejeitada"
    EMAIL_NOT_FOUND = "email_nao_encontrado"


LGPD_OPEN_STATUSES = {
    LgpdStatus.PENDING.value,
    LgpdStatus.IN_REVIEW.value,
    LgpdStatus.AWAITING_HR.value,
}
