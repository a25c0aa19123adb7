import io
from datetime import timedelta

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from admission.config import settings
from admission.constants import CandidateStatus
from admission.database import get_db, init_db
from admission.dependencies import get_notifier, get_ocr_engine, get_session_store, get_storage
from admission.main import app
from admission.models.candidate import Candidate
from admission.models.hr_user import HrUser
from admission.models.job import JobPosting
from admission.services.hr_auth_service import hr_auth_service
from admission.services.notifications import EMAIL, WHATSAPP, NotificationDispatcher, NotificationError
from admission.services.session_store import InMemorySessionStore
from admission.services.storage import LocalBlobStorage
from admission.utils.clock import utcnow
from admission.utils.security import hash_password

HR_EMAIL = "rh@empresa.com.br"
HR_PASSWORD = "senha-forte-123"


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# --- Images ---


def noise_image(width=1000, height=800, fmt="JPEG", seed=0) -> bytes:
    """Random noise: sharp, mid brightness and large enough to pass every check."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    out = io.BytesIO()
    img = Image.fromarray(pixels, "RGB")
    if fmt == "JPEG":
        img.save(out, format=fmt, quality=95)
    else:
        img.save(out, format=fmt)
    return out.getvalue()


def solid_image(width=1000, height=800, value=128, fmt="PNG") -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), (value, value, value)).save(out, format=fmt)
    return out.getvalue()


# --- Fakes ---


class FakeOcrEngine:
    def __init__(self, text=""):
        self.text = text
        self.calls = 0

    def recognize(self, data, language):
        self.calls += 1
        return self.text


class RecordingTransport:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, destination, message):
        if self.fail:
            raise NotificationError("transport down")
        self.sent.append((destination, message))


# --- Fixtures ---


@pytest.fixture
def test_db(tmp_path):
    db_path = tmp_path / "db.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    init_db(engine)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(tmp_path / "storage", "http://testserver")


@pytest.fixture
def ocr_engine():
    return FakeOcrEngine()


@pytest.fixture
def email_transport():
    return RecordingTransport()


@pytest.fixture
def whatsapp_transport():
    return RecordingTransport()


@pytest.fixture
def notifier(email_transport, whatsapp_transport):
    return NotificationDispatcher(transports={EMAIL: email_transport, WHATSAPP: whatsapp_transport})


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "outbox_retry_backoff_seconds", 0.0)
    monkeypatch.setattr(settings, "hr_notification_emails", "rh@empresa.com.br")
    monkeypatch.setattr(settings, "hr_notification_phone", "")
    monkeypatch.setattr(settings, "declaration_secret", "test-secret")


@pytest.fixture
def client(test_db, storage, ocr_engine, notifier, session_store):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_ocr_engine] = lambda: ocr_engine
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_session_store] = lambda: session_store
    hr_auth_service.clear()
    c = TestClient(app)
    yield c
    hr_auth_service.clear()


@pytest.fixture
def hr_headers(client, test_db):
    with test_db() as db:
        db.add(HrUser(
            nome="RH",
            email=HR_EMAIL,
            password_hash=hash_password(HR_PASSWORD),
            perfil="admin",
            created_at=utcnow(),
        ))
        db.commit()
    r = client.post("/api/v1/auth/login", json={"email": HR_EMAIL, "senha": HR_PASSWORD})
    return {"Authorization": f"Bearer {r.json()['token']}"}


@pytest.fixture
def approved_candidate(test_db):
    """An approved candidate for an open job posting; returns the candidate id."""
    now = utcnow()
    with test_db() as db:
        job = JobPosting(titulo="Auxiliar Administrativo", local="Recife", status="aberta",
                         created_at=now, updated_at=now)
        db.add(job)
        db.flush()
        candidate = Candidate(
            nome="Maria Souza Lima",
            cpf="12345678901",
            email="maria@example.com",
            telefone="(81) 99999-8888",
            estado="PE",
            cidade="Recife",
            bairro="Boa Viagem",
            job_posting_id=job.id,
            status=CandidateStatus.APPROVED.value,
            created_at=now - timedelta(days=10),
            updated_at=now,
        )
        db.add(candidate)
        db.commit()
        return candidate.id


@pytest.fixture
def candidate_headers(client, hr_headers, approved_candidate):
    r = client.post(
        f"/api/v1/documents/gerar-credenciais/{approved_candidate}",
        json={"enviarNotificacao": False},
        headers=hr_headers,
    )
    creds = r.json()
    r = client.post("/api/v1/documents/login", json={"cpf": creds["cpf"], "senha": creds["senha"]})
    return {"Authorization": f"Bearer {r.json()['token']}"}
