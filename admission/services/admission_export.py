"""Hand-off of approved candidates to the external admission system."""

import logging

import httpx
from sqlalchemy.orm import Session

from admission.config import settings
from admission.constants import ADMISSION_EXPORT_FIELDS, CandidateStatus
from admission.errors import InvalidState, NotFound, UpstreamFailure
from admission.models.candidate import Candidate
from admission.utils.clock import isoformat, utcnow

logger = logging.getLogger(__name__)

ORIGIN = "trabalhe_conosco"


def copy_documents_to_candidate(db: Session, candidate_id: int) -> dict:
    """Flatten the candidate's document URLs under the admission system's field names.

    The caller commits.
    """
    candidate = db.get(Candidate, candidate_id)
    if candidate is None:
        raise NotFound("Candidato não encontrado")
    record = candidate.document_record
    if record is None:
        raise InvalidState("Candidato não possui registro de documentos")

    export = {}
    for document_type, field_name in ADMISSION_EXPORT_FIELDS.items():
        slot = record.slot(document_type)
        export[field_name] = slot.url if slot is not None else None
    export["dependentes"] = list(record.dependents or [])

    candidate.admission_export = export
    candidate.updated_at = utcnow()
    logger.info("Copied %s document URL(s) for candidate %s",
                sum(1 for k, v in export.items() if k != "dependentes" and v), candidate.id)
    return export


def build_payload(candidate: Candidate) -> dict:
    documents = {"curriculo_url": candidate.curriculo_url}
    documents.update(candidate.admission_export or {})
    return {
        "nome": candidate.nome,
        "cpf": candidate.cpf,
        "email": candidate.email,
        "telefone": candidate.telefone,
        "data_nascimento": candidate.data_nascimento,
        "raca": candidate.raca,
        "endereco": {
            "estado": candidate.estado,
            "cidade": candidate.cidade,
            "bairro": candidate.bairro,
        },
        "documentos": documents,
        "vaga": {
            "id": candidate.job_posting_id,
            "titulo": candidate.job_title,
        },
        "origem": ORIGIN,
        "candidato_id_origem": candidate.id,
        "data_cadastro": isoformat(candidate.created_at),
    }


class AdmissionSystemClient:
    def __init__(self, base_url: str, api_key: str = "", timeout: float = 30.0,
                 transport: httpx.BaseTransport | None = None):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "AdmissionSystemClient":
        return cls(
            base_url=settings.admission_api_url,
            api_key=settings.admission_api_key,
            timeout=settings.http_timeout_seconds,
        )

    def send(self, payload: dict) -> dict:
        if not self.base_url:
            raise UpstreamFailure("URL do sistema de admissão não configurada")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.base_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Admission system answered %s: %s",
                         exc.response.status_code, exc.response.text[:500])
            raise UpstreamFailure(
                f"Sistema de admissão retornou erro {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Admission system unreachable: %s", exc)
            raise UpstreamFailure("Não foi possível conectar ao sistema de admissão") from exc

        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}


def send_candidate_to_admission(db: Session, candidate_id: int, client: AdmissionSystemClient) -> dict:
    candidate = db.get(Candidate, candidate_id)
    if candidate is None:
        raise NotFound("Candidato não encontrado")
    if candidate.status != CandidateStatus.DOCUMENTS_APPROVED.value:
        raise InvalidState("Apenas candidatos com documentos aprovados podem ser enviados para admissão")

    if not candidate.admission_export:
        copy_documents_to_candidate(db, candidate.id)

    response = client.send(build_payload(candidate))

    candidate.exported_at = utcnow()
    candidate.updated_at = candidate.exported_at
    db.commit()
    logger.info("Candidate %s sent to the admission system", candidate.id)
    return response
