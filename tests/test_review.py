import json

import httpx
import pytest

from admission.constants import MANDATORY_DOCUMENTS, DocumentType
from admission.dependencies import get_admission_client
from admission.main import app
from admission.models.candidate import Candidate
from admission.models.document import DocumentRecord, DocumentSlot
from admission.models.outbox import OutboxTask
from admission.services.admission_export import AdmissionSystemClient, build_payload
from admission.services.document_service import ensure_record
from admission.utils.clock import utcnow


def seed_record(test_db, candidate_id, document_types=MANDATORY_DOCUMENTS, status="documentos_enviados"):
    """Write a record with uploaded slots straight to the database; returns the record id."""
    with test_db() as db:
        record, _ = ensure_record(db, candidate_id)
        now = utcnow()
        for document_type in document_types:
            record.slots.append(DocumentSlot(
                document_type=document_type.value,
                url=f"http://testserver/arquivos/documentos/{candidate_id}/{document_type.value}.jpg",
                uploaded_at=now,
            ))
        record.status = status
        record.last_upload_at = now
        record.ethnicity = "parda"
        db.get(Candidate, candidate_id).status = status
        db.commit()
        return record.id


@pytest.fixture
def record_id(test_db, approved_candidate):
    return seed_record(test_db, approved_candidate)


class TestListRecords:
    def test_requires_hr(self, client, record_id):
        r = client.get("/api/v1/documents/rh/listar", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    def test_list(self, client, hr_headers, record_id):
        r = client.get("/api/v1/documents/rh/listar", headers=hr_headers)
        assert r.status_code == 200
        items = r.json()["documentos"]
        assert len(items) == 1
        item = items[0]
        assert item["id"] == record_id
        assert item["candidato_nome"] == "Maria Souza Lima"
        assert item["vaga_titulo"] == "Auxiliar Administrativo"
        assert item["completude"]["completo"] is True
        assert item["documentos"]["ctps_digital"]["url"].endswith("ctps_digital.jpg")
        assert item["documentos"]["reservista"]["obrigatorio"] is False

    def test_filter_by_status(self, client, hr_headers, record_id):
        r = client.get("/api/v1/documents/rh/listar", params={"status": "aprovado"}, headers=hr_headers)
        assert r.json()["documentos"] == []
        r = client.get("/api/v1/documents/rh/listar", params={"status": "documentos_enviados"},
                       headers=hr_headers)
        assert len(r.json()["documentos"]) == 1


class TestValidateDocument:
    def _validate(self, client, hr_headers, record_id, **body):
        return client.put(f"/api/v1/documents/rh/{record_id}/validar", json=body, headers=hr_headers)

    def test_approve_single_slot(self, client, hr_headers, record_id, test_db):
        r = self._validate(client, hr_headers, record_id, tipo_documento="ctps_digital", acao="aprovar")
        assert r.status_code == 200
        assert r.json()["message"] == "Documento aprovado"
        with test_db() as db:
            record = db.get(DocumentRecord, record_id)
            assert record.slot("ctps_digital").validated is True
            # a single-slot decision never moves the record
            assert record.status == "documentos_enviados"

    def test_reject_needs_reason(self, client, hr_headers, record_id):
        r = self._validate(client, hr_headers, record_id, tipo_documento="ctps_digital", acao="rejeitar")
        assert r.status_code == 400
        r = self._validate(client, hr_headers, record_id, tipo_documento="ctps_digital",
                           acao="rejeitar", motivo_rejeicao="   ")
        assert r.status_code == 400

    def test_reject_with_reason(self, client, hr_headers, record_id, test_db):
        r = self._validate(client, hr_headers, record_id, tipo_documento="identidade_verso",
                           acao="rejeitar", motivo_rejeicao="Foto cortada")
        assert r.status_code == 200
        with test_db() as db:
            slot = db.get(DocumentRecord, record_id).slot("identidade_verso")
            assert slot.rejected is True and slot.validated is False
            assert slot.rejection_reason == "Foto cortada"

    def test_approve_clears_earlier_rejection(self, client, hr_headers, record_id, test_db):
        self._validate(client, hr_headers, record_id, tipo_documento="ctps_digital",
                       acao="rejeitar", motivo_rejeicao="borrada")
        self._validate(client, hr_headers, record_id, tipo_documento="ctps_digital", acao="aprovar")
        with test_db() as db:
            slot = db.get(DocumentRecord, record_id).slot("ctps_digital")
            assert (slot.validated, slot.rejected, slot.rejection_reason) == (True, False, None)

    def test_unknown_action(self, client, hr_headers, record_id):
        r = self._validate(client, hr_headers, record_id, tipo_documento="ctps_digital", acao="talvez")
        assert r.status_code == 400

    def test_unknown_document_type(self, client, hr_headers, record_id):
        r = self._validate(client, hr_headers, record_id, tipo_documento="passaporte", acao="aprovar")
        assert r.status_code == 400

    def test_slot_not_uploaded(self, client, hr_headers, record_id):
        r = self._validate(client, hr_headers, record_id, tipo_documento="reservista", acao="aprovar")
        assert r.status_code == 409

    def test_unknown_record(self, client, hr_headers):
        r = self._validate(client, hr_headers, 999, tipo_documento="ctps_digital", acao="aprovar")
        assert r.status_code == 404


class TestValidateAll:
    def _validate_all(self, client, hr_headers, record_id, **body):
        return client.put(f"/api/v1/documents/rh/{record_id}/validar-todos", json=body, headers=hr_headers)

    def test_only_uploaded_slots_are_touched(self, client, hr_headers, approved_candidate, test_db):
        partial = (DocumentType.PHOTO, DocumentType.WORK_RECORD, DocumentType.ID_FRONT)
        record_id = seed_record(test_db, approved_candidate, partial, status="pendente")

        r = self._validate_all(client, hr_headers, record_id, acao="rejeitar", motivo_rejeicao="ilegíveis")
        assert r.status_code == 200
        assert r.json()["atualizados"] == 3
        with test_db() as db:
            record = db.get(DocumentRecord, record_id)
            assert record.status == "rejeitado"
            assert record.reviewed_at is not None
            assert all(s.rejected for s in record.slots)
            assert len(record.slots) == 3
            assert db.get(Candidate, approved_candidate).status == "documentos_rejeitados"
            assert db.query(OutboxTask).count() == 0

    def test_approve_all_copies_documents(self, client, hr_headers, approved_candidate, record_id, test_db):
        r = self._validate_all(client, hr_headers, record_id, acao="aprovar")
        assert r.status_code == 200
        assert r.json()["atualizados"] == 8

        with test_db() as db:
            record = db.get(DocumentRecord, record_id)
            assert record.status == "aprovado"
            assert all(s.validated for s in record.slots)
            candidate = db.get(Candidate, approved_candidate)
            assert candidate.status == "documentos_aprovados"

            # the copy runs as a background task right after the response
            task = db.query(OutboxTask).one()
            assert task.kind == "copy_documents_for_admission"
            assert task.status == "done"
            export = candidate.admission_export
            assert export["carteira_trabalho_url"].endswith("ctps_digital.jpg")
            assert export["foto_url"].endswith("foto_3x4.jpg")
            assert export["certificado_reservista_url"] is None
            assert export["dependentes"] == []

    def test_approved_record_is_final(self, client, hr_headers, record_id):
        self._validate_all(client, hr_headers, record_id, acao="aprovar")
        r = self._validate_all(client, hr_headers, record_id, acao="rejeitar", motivo_rejeicao="x")
        assert r.status_code == 409

    def test_bulk_reject_needs_reason(self, client, hr_headers, record_id):
        r = self._validate_all(client, hr_headers, record_id, acao="rejeitar")
        assert r.status_code == 400


class TestSendToAdmission:
    @pytest.fixture
    def admission_calls(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(201, json={"id": 555, "status": "recebido"})

        app.dependency_overrides[get_admission_client] = lambda: AdmissionSystemClient(
            "http://admissao.test/api/candidatos", api_key="chave", transport=httpx.MockTransport(handler),
        )
        return calls

    def test_not_approved_is_rejected(self, client, hr_headers, approved_candidate, record_id, admission_calls):
        r = client.post(f"/api/v1/documents/rh/candidatos/{approved_candidate}/enviar-admissao",
                        headers=hr_headers)
        assert r.status_code == 409
        assert admission_calls == []

    def test_send(self, client, hr_headers, approved_candidate, record_id, admission_calls, test_db):
        client.put(f"/api/v1/documents/rh/{record_id}/validar-todos", json={"acao": "aprovar"},
                   headers=hr_headers)
        r = client.post(f"/api/v1/documents/rh/candidatos/{approved_candidate}/enviar-admissao",
                        headers=hr_headers)
        assert r.status_code == 200
        assert r.json()["resposta"] == {"id": 555, "status": "recebido"}

        request = admission_calls[0]
        assert request.headers["Authorization"] == "Bearer chave"
        payload = json.loads(request.content)
        assert payload["cpf"] == "12345678901"
        assert payload["origem"] == "trabalhe_conosco"
        assert payload["candidato_id_origem"] == approved_candidate
        assert payload["vaga"]["titulo"] == "Auxiliar Administrativo"
        assert payload["endereco"] == {"estado": "PE", "cidade": "Recife", "bairro": "Boa Viagem"}
        assert payload["documentos"]["rg_frente_url"].endswith("identidade_frente.jpg")

        with test_db() as db:
            assert db.get(Candidate, approved_candidate).exported_at is not None

    def test_upstream_error(self, client, hr_headers, approved_candidate, record_id, test_db):
        app.dependency_overrides[get_admission_client] = lambda: AdmissionSystemClient(
            "http://admissao.test/api/candidatos",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )
        with test_db() as db:
            db.get(Candidate, approved_candidate).status = "documentos_aprovados"
            db.commit()
        r = client.post(f"/api/v1/documents/rh/candidatos/{approved_candidate}/enviar-admissao",
                        headers=hr_headers)
        assert r.status_code == 502
        with test_db() as db:
            assert db.get(Candidate, approved_candidate).exported_at is None


class TestPayload:
    def test_payload_includes_resume_and_copied_documents(self, test_db, approved_candidate):
        with test_db() as db:
            candidate = db.get(Candidate, approved_candidate)
            candidate.curriculo_url = "http://testserver/arquivos/curriculos/cv.pdf"
            candidate.admission_export = {"foto_url": "http://testserver/arquivos/foto.jpg"}
            payload = build_payload(candidate)
        assert payload["documentos"] == {
            "curriculo_url": "http://testserver/arquivos/curriculos/cv.pdf",
            "foto_url": "http://testserver/arquivos/foto.jpg",
        }
        assert payload["nome"] == "Maria Souza Lima"


class TestProcessOutbox:
    def test_drains_pending_tasks(self, client, hr_headers, approved_candidate, test_db, email_transport):
        with test_db() as db:
            now = utcnow()
            db.add(OutboxTask(kind="notify_hr_documents_complete", payload={"candidate_id": approved_candidate},
                              status="pending", attempts=0, created_at=now, updated_at=now))
            db.commit()

        r = client.post("/api/v1/documents/rh/outbox/processar", headers=hr_headers)
        assert r.status_code == 200
        assert r.json()["processadas"] == 1
        assert email_transport.sent[0][0] == "rh@empresa.com.br"

        r = client.post("/api/v1/documents/rh/outbox/processar", headers=hr_headers)
        assert r.json()["processadas"] == 0
