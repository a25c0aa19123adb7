from datetime import timedelta

from admission.models.candidate import Candidate
from admission.models.credential import TemporaryCredential
from admission.models.document import DocumentRecord
from admission.utils.clock import utcnow
from admission.utils.security import PASSWORD_ALPHABET


class TestIssueCredentials:
    def _issue(self, client, hr_headers, candidate_id, notify=False):
        return client.post(
            f"/api/v1/documents/gerar-credenciais/{candidate_id}",
            json={"enviarNotificacao": notify},
            headers=hr_headers,
        )

    def test_requires_hr(self, client, approved_candidate):
        r = client.post(
            f"/api/v1/documents/gerar-credenciais/{approved_candidate}",
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert r.status_code == 401

    def test_issue_for_approved_candidate(self, client, hr_headers, approved_candidate, test_db):
        r = self._issue(client, hr_headers, approved_candidate)
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["cpf"] == "12345678901"
        assert len(data["senha"]) == 7
        assert set(data["senha"]) <= set(PASSWORD_ALPHABET)
        assert data["senhaNova"] is True
        assert data["novoRegistro"] is True
        assert data["link"].endswith("/documentos/login")
        assert data["candidato"]["nome"] == "Maria Souza Lima"
        assert data["notificacao"]["solicitada"] is False

        with test_db() as db:
            record = db.query(DocumentRecord).filter_by(candidate_id=approved_candidate).one()
            assert record.status == "pendente"
            assert len(record.access_token) == 64

    def test_reissue_returns_same_password(self, client, hr_headers, approved_candidate, test_db):
        first = self._issue(client, hr_headers, approved_candidate).json()
        second = self._issue(client, hr_headers, approved_candidate).json()
        assert second["senha"] == first["senha"]
        assert second["senhaNova"] is False
        assert second["novoRegistro"] is False

        with test_db() as db:
            assert db.query(TemporaryCredential).filter_by(candidate_id=approved_candidate).count() == 1

    def test_expired_credential_is_replaced(self, client, hr_headers, approved_candidate, test_db):
        first = self._issue(client, hr_headers, approved_candidate).json()
        with test_db() as db:
            cred = db.query(TemporaryCredential).filter_by(candidate_id=approved_candidate).one()
            cred.expires_at = utcnow() - timedelta(seconds=1)
            db.commit()

        second = self._issue(client, hr_headers, approved_candidate).json()
        assert second["senhaNova"] is True

        with test_db() as db:
            creds = db.query(TemporaryCredential).filter_by(candidate_id=approved_candidate).all()
            assert len(creds) == 2
            active = [c for c in creds if c.active]
            assert len(active) == 1
            assert active[0].password == second["senha"]
            assert [c for c in creds if not c.active][0].password == first["senha"]

    def test_not_approved_is_invalid_state(self, client, hr_headers, approved_candidate, test_db):
        with test_db() as db:
            db.get(Candidate, approved_candidate).status = "em_analise"
            db.commit()
        r = self._issue(client, hr_headers, approved_candidate)
        assert r.status_code == 409
        assert "aprovado" in r.json()["error"]

    def test_unknown_candidate(self, client, hr_headers):
        r = self._issue(client, hr_headers, 999)
        assert r.status_code == 404

    def test_notification_sent_by_email_and_whatsapp(
        self, client, hr_headers, approved_candidate, email_transport, whatsapp_transport, test_db,
    ):
        r = self._issue(client, hr_headers, approved_candidate, notify=True)
        data = r.json()
        assert data["notificacao"]["enviada"] is True
        assert [c["status"] for c in data["notificacao"]["canais"]] == ["delivered", "delivered"]

        destination, message = email_transport.sent[0]
        assert destination == "maria@example.com"
        assert data["senha"] in message.text
        assert "123.456.789-01" in message.text
        assert whatsapp_transport.sent[0][0] == "(81) 99999-8888"

        with test_db() as db:
            record = db.query(DocumentRecord).filter_by(candidate_id=approved_candidate).one()
            assert record.link_sent_at is not None

    def test_notification_failure_does_not_fail_issue(
        self, client, hr_headers, approved_candidate, email_transport, whatsapp_transport,
    ):
        email_transport.fail = True
        whatsapp_transport.fail = True
        r = self._issue(client, hr_headers, approved_candidate, notify=True)
        assert r.status_code == 200
        assert r.json()["notificacao"]["enviada"] is False
        assert all(c["status"] == "failed" for c in r.json()["notificacao"]["canais"])

    def test_notification_defaults_to_on(self, client, hr_headers, approved_candidate, email_transport):
        r = client.post(
            f"/api/v1/documents/gerar-credenciais/{approved_candidate}", headers=hr_headers,
        )
        assert r.status_code == 200
        assert r.json()["notificacao"]["solicitada"] is True
        assert len(email_transport.sent) == 1


class TestCandidateLogin:
    def _credentials(self, client, hr_headers, candidate_id):
        return client.post(
            f"/api/v1/documents/gerar-credenciais/{candidate_id}",
            json={"enviarNotificacao": False},
            headers=hr_headers,
        ).json()

    def test_login_success(self, client, hr_headers, approved_candidate):
        creds = self._credentials(client, hr_headers, approved_candidate)
        r = client.post("/api/v1/documents/login", json={
            "cpf": "123.456.789-01",
            "senha": f"  {creds['senha']} ",
        })
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["token"]
        assert data["candidato"] == {
            "id": approved_candidate, "nome": "Maria Souza Lima", "email": "maria@example.com",
        }

    def test_wrong_password_and_unknown_cpf_look_the_same(self, client, hr_headers, approved_candidate):
        self._credentials(client, hr_headers, approved_candidate)
        wrong = client.post("/api/v1/documents/login", json={"cpf": "12345678901", "senha": "XXXXXXX"})
        unknown = client.post("/api/v1/documents/login", json={"cpf": "99999999999", "senha": "XXXXXXX"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"error": "CPF ou senha inválidos"}

    def test_expired_credential_is_rejected(self, client, hr_headers, approved_candidate, test_db):
        creds = self._credentials(client, hr_headers, approved_candidate)
        with test_db() as db:
            cred = db.query(TemporaryCredential).one()
            cred.expires_at = utcnow() - timedelta(minutes=1)
            db.commit()
        r = client.post("/api/v1/documents/login", json={"cpf": creds["cpf"], "senha": creds["senha"]})
        assert r.status_code == 401
        assert r.json() == {"error": "CPF ou senha inválidos"}

    def test_repeated_failures_are_throttled(self, client, hr_headers, approved_candidate):
        creds = self._credentials(client, hr_headers, approved_candidate)
        for _ in range(3):
            r = client.post("/api/v1/documents/login", json={"cpf": creds["cpf"], "senha": "WRONG00"})
            assert r.status_code == 401
        r = client.post("/api/v1/documents/login", json={"cpf": creds["cpf"], "senha": creds["senha"]})
        assert r.status_code == 429
        assert r.json()["retry_after_seconds"] > 0

    def test_session_token_opens_portal(self, client, candidate_headers):
        r = client.get("/api/v1/documents/dados", headers=candidate_headers)
        assert r.status_code == 200
        data = r.json()
        assert data["candidato"]["vaga"] == "Auxiliar Administrativo"
        assert data["status"] == "pendente"
        assert len(data["documentos"]) == 11
        assert data["completude"]["total_obrigatorios"] == 8

    def test_portal_without_token(self, client):
        r = client.get("/api/v1/documents/dados")
        assert r.status_code == 401
        assert "error" in r.json()
