import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admission.constants import MANUAL_CANDIDATE_STATUSES, CandidateStatus
from admission.database import get_db
from admission.dependencies import require_hr_user
from admission.models.candidate import Candidate
from admission.models.job import JobPosting
from admission.schemas.candidate import (
    CandidateCreate,
    CandidateListResponse,
    CandidateResponse,
    CandidateStatusUpdate,
)
from admission.utils.clock import isoformat, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/candidatos", tags=["candidatos"])


def _candidate_to_response(candidate: Candidate) -> CandidateResponse:
    return CandidateResponse(
        id=candidate.id,
        nome=candidate.nome,
        cpf=candidate.cpf,
        email=candidate.email,
        telefone=candidate.telefone,
        data_nascimento=candidate.data_nascimento,
        estado=candidate.estado,
        cidade=candidate.cidade,
        bairro=candidate.bairro,
        curriculo_url=candidate.curriculo_url,
        vaga_id=candidate.job_posting_id,
        vaga_titulo=candidate.job_title,
        status=candidate.status,
        raca=candidate.raca,
        created_at=isoformat(candidate.created_at),
        updated_at=isoformat(candidate.updated_at),
    )


def _duplicate_application(db: Session, cpf: str, job_posting_id: int | None) -> bool:
    query = db.query(Candidate).filter(Candidate.cpf == cpf)
    if job_posting_id is None:
        query = query.filter(Candidate.job_posting_id.is_(None))
    else:
        query = query.filter(Candidate.job_posting_id == job_posting_id)
    return query.first() is not None


@router.post("", response_model=CandidateResponse, status_code=201)
async def apply(req: CandidateCreate, db: Session = Depends(get_db)):
    """Public application form."""
    if req.vaga_id is not None:
        job = db.get(JobPosting, req.vaga_id)
        if not job:
            raise HTTPException(status_code=404, detail="Vaga não encontrada")
        if job.status != "aberta":
            raise HTTPException(status_code=400, detail="Vaga não está aberta")

    # The unique constraint does not cover NULL job postings, so check first.
    if _duplicate_application(db, req.cpf, req.vaga_id):
        raise HTTPException(status_code=409, detail="Você já se candidatou para esta vaga")

    now = utcnow()
    candidate = Candidate(
        nome=req.nome.strip(),
        cpf=req.cpf,
        email=req.email.strip().lower(),
        telefone=req.telefone,
        data_nascimento=req.data_nascimento,
        estado=req.estado,
        cidade=req.cidade,
        bairro=req.bairro,
        curriculo_url=req.curriculo_url,
        job_posting_id=req.vaga_id,
        status=CandidateStatus.NEW.value,
        created_at=now,
        updated_at=now,
    )
    db.add(candidate)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Você já se candidatou para esta vaga")
    db.refresh(candidate)
    logger.info("New application %s for job posting %s", candidate.id, candidate.job_posting_id)
    return _candidate_to_response(candidate)


@router.get("", response_model=CandidateListResponse, dependencies=[Depends(require_hr_user)])
async def list_candidates(
    status: str | None = None,
    vaga_id: int | None = None,
    q: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Candidate)
    if status:
        query = query.filter(Candidate.status == status)
    if vaga_id is not None:
        query = query.filter(Candidate.job_posting_id == vaga_id)
    if q:
        query = query.filter(Candidate.nome.ilike(f"%{q}%") | Candidate.email.ilike(f"%{q}%"))

    total = query.count()
    candidates = (
        query.order_by(Candidate.created_at.desc(), Candidate.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return CandidateListResponse(
        candidatos=[_candidate_to_response(c) for c in candidates],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{candidate_id}", response_model=CandidateResponse, dependencies=[Depends(require_hr_user)])
async def get_candidate(candidate_id: int, db: Session = Depends(get_db)):
    candidate = db.get(Candidate, candidate_id)
    if not candidate:
        raise HTTPException(status_code=404, detail="Candidato não encontrado")
    return _candidate_to_response(candidate)


@router.put("/{candidate_id}/status", response_model=CandidateResponse,
            dependencies=[Depends(require_hr_user)])
async def update_status(candidate_id: int, req: CandidateStatusUpdate, db: Session = Depends(get_db)):
    candidate = db.get(Candidate, candidate_id)
    if not candidate:
        raise HTTPException(status_code=404, detail="Candidato não encontrado")
    if req.status not in MANUAL_CANDIDATE_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {sorted(MANUAL_CANDIDATE_STATUSES)}",
        )

    candidate.status = req.status
    if req.status == CandidateStatus.TALENT_POOL.value:
        # Talent pool candidates are kept for future openings, not for this one.
        candidate.job_posting_id = None
    candidate.updated_at = utcnow()
    db.commit()
    db.refresh(candidate)
    logger.info("Candidate %s moved to %s", candidate.id, candidate.status)
    return _candidate_to_response(candidate)
