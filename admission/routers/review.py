from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from admission.constants import ReviewAction
from admission.database import get_db
from admission.dependencies import get_admission_client, get_outbox_worker, require_hr_user
from admission.schemas.document import BulkReviewRequest, DocumentReviewRequest
from admission.services import review_service
from admission.services.admission_export import AdmissionSystemClient, send_candidate_to_admission
from admission.services.outbox import OutboxWorker

router = APIRouter(
    prefix="/documents/rh",
    tags=["documents-rh"],
    dependencies=[Depends(require_hr_user)],
)


@router.get("/listar")
async def list_records(status: str | None = None, db: Session = Depends(get_db)):
    return {"success": True, "documentos": review_service.list_records(db, status)}


@router.put("/{record_id}/validar")
async def validate_document(record_id: int, req: DocumentReviewRequest, db: Session = Depends(get_db)):
    action = review_service.validate_document(
        db, record_id, req.tipo_documento, req.acao, req.motivo_rejeicao,
    )
    return {
        "success": True,
        "message": "Documento aprovado" if action == ReviewAction.APPROVE else "Documento rejeitado",
    }


@router.put("/{record_id}/validar-todos")
async def validate_all_documents(
    record_id: int,
    req: BulkReviewRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    worker: OutboxWorker = Depends(get_outbox_worker),
):
    action, updated, task_ids = review_service.validate_all_documents(
        db, record_id, req.acao, req.motivo_rejeicao,
    )
    for task_id in task_ids:
        background_tasks.add_task(worker.run, task_id)
    return {
        "success": True,
        "message": "Documentos aprovados" if action == ReviewAction.APPROVE else "Documentos rejeitados",
        "atualizados": updated,
    }


@router.post("/candidatos/{candidate_id}/enviar-admissao")
async def send_to_admission(
    candidate_id: int,
    db: Session = Depends(get_db),
    client: AdmissionSystemClient = Depends(get_admission_client),
):
    response = await run_in_threadpool(send_candidate_to_admission, db, candidate_id, client)
    return {"success": True, "message": "Candidato enviado para admissão", "resposta": response}


@router.post("/outbox/processar")
async def process_outbox(worker: OutboxWorker = Depends(get_outbox_worker)):
    processed = await run_in_threadpool(worker.drain)
    return {"success": True, "processadas": processed}
