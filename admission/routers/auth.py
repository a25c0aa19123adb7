from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from admission.database import get_db
from admission.dependencies import require_hr_user
from admission.schemas.auth import HrLoginRequest, HrLoginResponse, HrSetupRequest, HrSetupResponse
from admission.services.hr_auth_service import hr_auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/setup", response_model=HrSetupResponse, status_code=201)
async def setup(req: HrSetupRequest, db: Session = Depends(get_db)):
    """Create the first HR account. Only allowed while no account exists."""
    user = hr_auth_service.setup(db, req.nome, req.email, req.senha)
    return HrSetupResponse(id=user.id, nome=user.nome, email=user.email, perfil=user.perfil)


@router.post("/login", response_model=HrLoginResponse)
async def login(req: HrLoginRequest, request: Request, db: Session = Depends(get_db)):
    # Throttle per client host so one source cannot brute-force every account.
    client_host = request.client.host if request.client else "unknown"
    return hr_auth_service.login(db, req.email, req.senha, throttle_key=f"hr_login:{client_host}")


@router.post("/logout", dependencies=[Depends(require_hr_user)])
async def logout(authorization: str = Header(...)):
    hr_auth_service.logout(authorization[7:].strip())
    return {"message": "Sessão encerrada"}
