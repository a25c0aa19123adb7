from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from admission.config import settings
from admission.database import SessionLocal, get_db
from admission.services.admission_export import AdmissionSystemClient
from admission.services.hr_auth_service import hr_auth_service
from admission.services.notifications import NotificationDispatcher
from admission.services.outbox import OutboxWorker
from admission.services.residency_ocr import TesseractOcrEngine
from admission.services.session_store import (
    DatabaseSessionStore,
    InMemorySessionStore,
    SessionStore,
    resolve_session,
)
from admission.services.storage import LocalBlobStorage

_session_store: SessionStore | None = None


def _bearer(authorization: str | None) -> str | None:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        if settings.session_backend == "database":
            _session_store = DatabaseSessionStore(SessionLocal)
        else:
            _session_store = InMemorySessionStore()
    return _session_store


def get_storage() -> LocalBlobStorage:
    return LocalBlobStorage(settings.storage_path, settings.public_base_url)


def get_ocr_engine() -> TesseractOcrEngine:
    return TesseractOcrEngine(timeout_seconds=settings.ocr_timeout_seconds)


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher.from_settings()


def get_admission_client() -> AdmissionSystemClient:
    return AdmissionSystemClient.from_settings()


def get_outbox_worker(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> OutboxWorker:
    # Background tasks outlive the request session, so the worker opens its own.
    factory = sessionmaker(bind=db.get_bind(), autoflush=False, autocommit=False)
    return OutboxWorker(factory, notifier)


async def require_hr_user(authorization: str = Header(...)) -> int:
    token = _bearer(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user_id = hr_auth_service.validate_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Token inválido ou expirado")
    return user_id


async def require_candidate_session(
    authorization: str | None = Header(None),
    store: SessionStore = Depends(get_session_store),
) -> int:
    return resolve_session(store, _bearer(authorization))
