import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from admission.config import settings
from admission.database import SessionLocal, init_db
from admission.errors import AdmissionError
from admission.logging_setup import setup_logging
from admission.routers import auth, candidates, documents, jobs, lgpd, review
from admission.services.hr_auth_service import hr_auth_service
from admission.services.notifications import NotificationDispatcher
from admission.services.outbox import drain_at_startup
from admission.utils.filesystem import ensure_storage_dirs

logger = logging.getLogger("admission")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    ensure_storage_dirs()
    # Side effects left pending by a previous process (crash, restart).
    try:
        drain_at_startup(SessionLocal, NotificationDispatcher.from_settings())
    except Exception as exc:
        logger.error("Could not drain the outbox at startup: %s", exc)
    logger.info("Admission back-office started (api prefix %s)", settings.api_prefix)
    yield
    hr_auth_service.clear()


app = FastAPI(
    title="Admission Back-Office",
    description="Recruitment back-office and candidate admission document pipeline",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AdmissionError)
async def admission_error_handler(request: Request, exc: AdmissionError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(jobs.router, prefix=settings.api_prefix)
app.include_router(candidates.router, prefix=settings.api_prefix)
app.include_router(documents.router, prefix=settings.api_prefix)
app.include_router(review.router, prefix=settings.api_prefix)
app.include_router(lgpd.router, prefix=settings.api_prefix)

# Stored blobs, read-only.
app.mount("/arquivos", StaticFiles(directory=settings.storage_path, check_dir=False), name="arquivos")


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
