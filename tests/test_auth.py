from admission.config import settings
from admission.services.hr_auth_service import hr_auth_service

SETUP = {"nome": "Ana RH", "email": "Ana@Empresa.com.br", "senha": "uma-senha-longa"}


class TestSetup:
    def test_first_account(self, client):
        r = client.post("/api/v1/auth/setup", json=SETUP)
        assert r.status_code == 201
        data = r.json()
        assert data["email"] == "ana@empresa.com.br"
        assert data["perfil"] == "admin"

    def test_only_once(self, client):
        client.post("/api/v1/auth/setup", json=SETUP)
        r = client.post("/api/v1/auth/setup", json={**SETUP, "email": "outra@empresa.com.br"})
        assert r.status_code == 409

    def test_short_password(self, client):
        r = client.post("/api/v1/auth/setup", json={**SETUP, "senha": "curta"})
        assert r.status_code == 400


class TestLogin:
    def _login(self, client, senha="uma-senha-longa", email="ana@empresa.com.br"):
        return client.post("/api/v1/auth/login", json={"email": email, "senha": senha})

    def test_login(self, client):
        client.post("/api/v1/auth/setup", json=SETUP)
        r = self._login(client, email="  ANA@empresa.com.br ")
        assert r.status_code == 200
        data = r.json()
        assert data["token"]
        assert data["expires_in_seconds"] > 0
        assert data["usuario"]["nome"] == "Ana RH"
        assert hr_auth_service.validate_token(data["token"]) == data["usuario"]["id"]

    def test_wrong_password(self, client):
        client.post("/api/v1/auth/setup", json=SETUP)
        r = self._login(client, senha="errada-123")
        assert r.status_code == 401
        assert r.json() == {"error": "Email ou senha inválidos"}

    def test_throttled_after_failures(self, client):
        client.post("/api/v1/auth/setup", json=SETUP)
        for _ in range(3):
            assert self._login(client, senha="errada-123").status_code == 401
        r = self._login(client)
        assert r.status_code == 429
        assert r.json()["retry_after_seconds"] > 0

    def test_configured_ladder_applies_to_login(self, client, monkeypatch):
        monkeypatch.setattr(settings, "auth_throttle_steps", [(1, 60.0)])
        client.post("/api/v1/auth/setup", json=SETUP)
        assert self._login(client, senha="errada-123").status_code == 401
        r = self._login(client)
        assert r.status_code == 429
        assert 59 < r.json()["retry_after_seconds"] <= 60

    def test_success_resets_failures(self, client):
        client.post("/api/v1/auth/setup", json=SETUP)
        for _ in range(2):
            self._login(client, senha="errada-123")
        assert self._login(client).status_code == 200
        for _ in range(2):
            self._login(client, senha="errada-123")
        assert self._login(client).status_code == 200

    def test_logout(self, client, hr_headers):
        assert client.get("/api/v1/candidatos", headers=hr_headers).status_code == 200
        r = client.post("/api/v1/auth/logout", headers=hr_headers)
        assert r.status_code == 200
        assert client.get("/api/v1/candidatos", headers=hr_headers).status_code == 401

    def test_missing_header(self, client):
        assert client.get("/api/v1/candidatos").status_code == 422


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
