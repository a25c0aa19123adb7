from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from admission.database import get_db
from admission.dependencies import require_hr_user
from admission.models.candidate import Candidate
from admission.models.job import JobPosting
from admission.schemas.job import JobPostingCreate, JobPostingResponse, JobPostingUpdate
from admission.utils.clock import isoformat, utcnow

router = APIRouter(prefix="/vagas", tags=["vagas"])

JOB_STATUSES = {"aberta", "fechada"}


def _job_to_response(job: JobPosting, db: Session) -> JobPostingResponse:
    candidate_count = db.query(func.count(Candidate.id)).filter(Candidate.job_posting_id == job.id).scalar()
    return JobPostingResponse(
        id=job.id,
        titulo=job.titulo,
        descricao=job.descricao,
        local=job.local,
        status=job.status,
        created_at=isoformat(job.created_at),
        updated_at=isoformat(job.updated_at),
        candidate_count=candidate_count,
    )


@router.post("", response_model=JobPostingResponse, status_code=201,
             dependencies=[Depends(require_hr_user)])
async def create_job(req: JobPostingCreate, db: Session = Depends(get_db)):
    now = utcnow()
    job = JobPosting(
        titulo=req.titulo,
        descricao=req.descricao,
        local=req.local,
        status="aberta",
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return _job_to_response(job, db)


@router.get("", response_model=list[JobPostingResponse])
async def list_jobs(
    status: str | None = None,
    q: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    query = db.query(JobPosting)
    if status:
        query = query.filter(JobPosting.status == status)
    if q:
        query = query.filter(JobPosting.titulo.ilike(f"%{q}%") | JobPosting.local.ilike(f"%{q}%"))
    jobs = query.order_by(JobPosting.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return [_job_to_response(j, db) for j in jobs]


@router.get("/{job_id}", response_model=JobPostingResponse)
async def get_job(job_id: int, db: Session = Depends(get_db)):
    job = db.get(JobPosting, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Vaga não encontrada")
    return _job_to_response(job, db)


@router.put("/{job_id}", response_model=JobPostingResponse, dependencies=[Depends(require_hr_user)])
async def update_job(job_id: int, req: JobPostingUpdate, db: Session = Depends(get_db)):
    job = db.get(JobPosting, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Vaga não encontrada")

    update_data = req.model_dump(exclude_unset=True)
    if "status" in update_data and update_data["status"] not in JOB_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {sorted(JOB_STATUSES)}")
    for key, value in update_data.items():
        setattr(job, key, value)
    job.updated_at = utcnow()

    db.commit()
    db.refresh(job)
    return _job_to_response(job, db)
