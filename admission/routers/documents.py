from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from admission.config import settings
from admission.constants import DocumentType
from admission.database import get_db
from admission.dependencies import (
    get_notifier,
    get_ocr_engine,
    get_outbox_worker,
    get_session_store,
    get_storage,
    require_candidate_session,
    require_hr_user,
)
from admission.errors import NotFound, ValidationFailed
from admission.schemas.auth import CandidateLoginRequest
from admission.schemas.document import CredentialRequest, EthnicityDeclarationRequest
from admission.services import candidate_auth_service, document_service
from admission.services.credential_service import issue_credentials
from admission.services.notifications import NotificationDispatcher, send_credentials
from admission.services.outbox import OutboxWorker
from admission.services.pdf_service import declaration_receipt
from admission.services.residency_ocr import OcrEngine
from admission.services.session_store import SessionStore
from admission.services.storage import BlobStorage
from admission.utils.clock import utcnow

router = APIRouter(prefix="/documents", tags=["documents"])


async def _read_upload(file: UploadFile) -> bytes:
    # Reject oversized files while streaming instead of after buffering them.
    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")
        chunks.append(chunk)

    content = b"".join(chunks)
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    return content


def _schedule(background_tasks: BackgroundTasks, worker: OutboxWorker, task_ids: list[int]):
    for task_id in task_ids:
        background_tasks.add_task(worker.run, task_id)


def _upload_response(outcome: document_service.UploadOutcome) -> dict:
    body = {
        "success": True,
        "message": "Documento enviado com sucesso",
        "url": outcome.url,
        "tipo_documento": outcome.document_type,
        "qualidade": outcome.quality.to_dict(),
        "completude": outcome.completeness,
    }
    if outcome.residency is not None:
        body["dataEmissao"] = outcome.residency.to_dict()["dataEmissao"]
        body["comprovante"] = outcome.residency.to_dict()
    if outcome.dimensions is not None:
        body["dimensoes"] = outcome.dimensions
    return body


# --- HR: credentials ---


@router.post("/gerar-credenciais/{candidate_id}", dependencies=[Depends(require_hr_user)])
async def generate_credentials(
    candidate_id: int,
    req: CredentialRequest | None = None,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    issued = issue_credentials(db, candidate_id)
    candidate = issued.candidate

    notificacao = {"solicitada": False, "enviada": False, "canais": []}
    if req is None or req.enviarNotificacao:
        results = await run_in_threadpool(
            send_credentials, notifier, candidate.nome, candidate.email, candidate.telefone,
            issued.cpf, issued.password, candidate.job_title,
        )
        delivered = any(r.delivered for r in results)
        notificacao = {
            "solicitada": True,
            "enviada": delivered,
            "canais": [r.to_dict() for r in results],
        }
        if delivered:
            issued.record.link_sent_at = utcnow()
            db.commit()

    return {
        "success": True,
        "link": settings.portal_login_url,
        "cpf": issued.cpf,
        "senha": issued.password,
        "senhaNova": issued.new_password,
        "novoRegistro": issued.new_record,
        "candidato": {
            "id": candidate.id,
            "nome": candidate.nome,
            "email": candidate.email,
            "telefone": candidate.telefone,
            "vaga": candidate.job_title,
        },
        "notificacao": notificacao,
    }


# --- Candidate portal ---


@router.post("/login")
async def candidate_login(
    req: CandidateLoginRequest,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
):
    result = candidate_auth_service.login(db, store, req.cpf, req.senha)
    return {"success": True, **result}


@router.get("/dados")
async def portal_data(
    candidate_id: int = Depends(require_candidate_session),
    db: Session = Depends(get_db),
):
    return document_service.portal_data(db, candidate_id)


@router.post("/upload")
async def upload_document(
    background_tasks: BackgroundTasks,
    tipo_documento: str = Form(...),
    file: UploadFile = File(...),
    candidate_id: int = Depends(require_candidate_session),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    ocr_engine: OcrEngine = Depends(get_ocr_engine),
    worker: OutboxWorker = Depends(get_outbox_worker),
):
    try:
        document_type = DocumentType(tipo_documento)
    except ValueError:
        raise ValidationFailed(
            "Tipo de documento inválido",
            [f"Tipo de documento desconhecido: {tipo_documento}"],
        ) from None

    content = await _read_upload(file)
    # Image analysis and OCR are CPU bound; keep them off the event loop.
    outcome = await run_in_threadpool(
        document_service.upload_document,
        db, candidate_id, document_type, content, file.filename, storage, ocr_engine,
    )
    _schedule(background_tasks, worker, outcome.task_ids)
    return _upload_response(outcome)


@router.post("/upload-foto-3x4")
async def upload_photo(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    candidate_id: int = Depends(require_candidate_session),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    worker: OutboxWorker = Depends(get_outbox_worker),
):
    content = await _read_upload(file)
    outcome = await run_in_threadpool(document_service.upload_photo, db, candidate_id, content, storage)
    _schedule(background_tasks, worker, outcome.task_ids)
    return _upload_response(outcome)


@router.post("/dependentes")
async def add_dependent(
    nome: str = Form(...),
    idade: int = Form(...),
    certidao: UploadFile = File(...),
    cpf: UploadFile | None = File(None),
    candidate_id: int = Depends(require_candidate_session),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    certificate = (await _read_upload(certidao), certidao.filename)
    tax_id = (await _read_upload(cpf), cpf.filename) if cpf is not None else None
    dependent = await run_in_threadpool(
        document_service.add_dependent,
        db, candidate_id, nome, idade, certificate, storage, tax_id,
    )
    return {"success": True, "dependente": dependent}


@router.post("/autodeclaracao")
async def submit_ethnicity_declaration(
    req: EthnicityDeclarationRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    candidate_id: int = Depends(require_candidate_session),
    db: Session = Depends(get_db),
    worker: OutboxWorker = Depends(get_outbox_worker),
):
    verification, summary, task_ids = document_service.submit_ethnicity_declaration(
        db,
        candidate_id,
        req.raca,
        req.aceiteTermos,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    _schedule(background_tasks, worker, task_ids)
    return {
        "success": True,
        "raca": req.raca,
        "hashVerificacao": verification,
        "completude": summary,
    }


@router.get("/autodeclaracao/comprovante")
async def download_declaration_receipt(
    candidate_id: int = Depends(require_candidate_session),
    db: Session = Depends(get_db),
):
    pdf_bytes = declaration_receipt(db, candidate_id)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="autodeclaracao.pdf"'},
    )


# --- Public ---


@router.get("/verificar-autodeclaracao/{verification_hash}")
async def verify_ethnicity_declaration(verification_hash: str, db: Session = Depends(get_db)):
    try:
        return document_service.verify_ethnicity_declaration(db, verification_hash)
    except NotFound as exc:
        return JSONResponse(status_code=404, content={"valido": False, "error": exc.message})


@router.get("/link/{token}")
async def view_by_access_token(token: str, db: Session = Depends(get_db)):
    """Read-only view behind the legacy access link."""
    record = document_service.get_record_by_access_token(db, token)
    candidate = record.candidate
    return {
        "success": True,
        "candidato": {
            "nome": candidate.nome,
            "email": candidate.email,
            "telefone": candidate.telefone,
            "cpf": candidate.cpf,
            "vaga": candidate.job_title,
        },
        "status": record.status,
        "documentos": document_service.document_status_map(record),
        "dependentes": list(record.dependents or []),
        "completude": document_service.completeness(record),
    }
