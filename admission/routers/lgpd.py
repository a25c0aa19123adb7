from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from admission.database import get_db
from admission.dependencies import get_notifier, get_storage, require_hr_user
from admission.schemas.lgpd import (
    LgpdCodeValidation,
    LgpdErasureRequest,
    LgpdRejectionRequest,
    LgpdRequestCreate,
    LgpdRequestListResponse,
    LgpdRequestResponse,
)
from admission.services import lgpd_service
from admission.services.notifications import NotificationDispatcher
from admission.services.storage import BlobStorage

router = APIRouter(prefix="/lgpd", tags=["lgpd"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# --- Data subject (public) ---


@router.post("/solicitar")
async def file_request(
    req: LgpdRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    created, delivery = await run_in_threadpool(
        lgpd_service.create_request,
        db, notifier, req.email, req.tipo, req.telefone,
        _client_ip(request), request.headers.get("user-agent", "unknown"),
    )
    return {
        "message": "Solicitação criada! Verifique seu email para obter o código de confirmação.",
        "solicitacao_id": created.id,
        "protocolo": lgpd_service.protocol(created.id),
        "tipo": created.tipo,
        "email": created.email,
        "notificacao": delivery.to_dict(),
    }


@router.post("/validar-codigo")
async def validate_code(
    req: LgpdCodeValidation,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    validated = await run_in_threadpool(
        lgpd_service.validate_code, db, notifier, req.solicitacao_id, req.codigo,
    )
    return {
        "message": "Código validado com sucesso!",
        "solicitacao": {
            "id": validated.id,
            "protocolo": lgpd_service.protocol(validated.id),
            "tipo": validated.tipo,
            "status": validated.status,
        },
    }


# --- HR ---


@router.get("/solicitacoes", response_model=LgpdRequestListResponse,
            dependencies=[Depends(require_hr_user)])
async def list_requests(
    status: str | None = None,
    tipo: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    requests = lgpd_service.list_requests(db, status, tipo, limit)
    return LgpdRequestListResponse(
        total=len(requests),
        solicitacoes=[LgpdRequestResponse(**lgpd_service.request_to_dict(r)) for r in requests],
    )


@router.get("/solicitacoes/{request_id}", response_model=LgpdRequestResponse,
            dependencies=[Depends(require_hr_user)])
async def get_request(request_id: int, db: Session = Depends(get_db)):
    return LgpdRequestResponse(**lgpd_service.request_to_dict(lgpd_service.get_request(db, request_id)))


@router.post("/exportar/{request_id}")
async def export_data(
    request_id: int,
    hr_user_id: int = Depends(require_hr_user),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    data = await run_in_threadpool(lgpd_service.export_data, db, notifier, request_id, hr_user_id)
    return {
        "message": "Dados exportados com sucesso!",
        "protocolo": lgpd_service.protocol(request_id),
        "dados": data,
    }


@router.post("/excluir/{request_id}")
async def erase_data(
    request_id: int,
    req: LgpdErasureRequest | None = None,
    hr_user_id: int = Depends(require_hr_user),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    storage: BlobStorage = Depends(get_storage),
):
    receipt = await run_in_threadpool(
        lgpd_service.erase_data,
        db, notifier, storage, request_id, hr_user_id, req.motivo if req else None,
    )
    return {"message": "Dados excluídos com sucesso!", **receipt}


@router.post("/rejeitar/{request_id}")
async def reject_request(
    request_id: int,
    req: LgpdRejectionRequest,
    hr_user_id: int = Depends(require_hr_user),
    db: Session = Depends(get_db),
):
    lgpd_service.reject_request(db, request_id, hr_user_id, req.motivo)
    return {"message": "Solicitação rejeitada", "protocolo": lgpd_service.protocol(request_id)}


@router.post("/notificar-email-nao-encontrado/{request_id}")
async def notify_email_not_found(
    request_id: int,
    hr_user_id: int = Depends(require_hr_user),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    delivery = await run_in_threadpool(
        lgpd_service.notify_email_not_found, db, notifier, request_id, hr_user_id,
    )
    return {
        "message": "Email enviado ao solicitante informando que não encontramos dados cadastrados",
        "protocolo": lgpd_service.protocol(request_id),
        "notificacao": delivery.to_dict(),
    }
