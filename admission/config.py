from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./admission.db"
    api_prefix: str = "/api/v1"
    allowed_origins: str = "*"
    log_level: str = "INFO"

    # Blob storage: files live under storage_path and are served from /arquivos.
    storage_path: Path = Path("./storage")
    public_base_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:5173"
    portal_login_url: str = "http://localhost:5173/documentos/login"
    max_upload_bytes: int = 20 * 1024 * 1024  # 20 MiB

    # Credentials and sessions
    credential_ttl_days: int = 30
    access_token_ttl_days: int = 30
    password_length: int = 7
    session_ttl_seconds: int = 24 * 60 * 60
    session_backend: str = "memory"  # "memory" or "database"
    hr_token_ttl_seconds: int = 8 * 60 * 60
    # (failures, seconds): after that many consecutive failures the caller waits that long.
    auth_throttle_steps: list[tuple[int, float]] = [(3, 5.0), (5, 30.0), (10, 300.0)]
    declaration_secret: str = "change-me-in-production"

    # Document validation
    ocr_language: str = "por"
    ocr_timeout_seconds: int = 60
    residency_max_age_days: int = 90
    photo_width: int = 300
    photo_height: int = 400
    photo_jpeg_quality: int = 90
    photo_min_bytes: int = 5 * 1024

    # Email (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = "rh@example.com"
    email_from_name: str = "RH - Admissão"

    # WhatsApp (Twilio)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_number: str = ""

    # LGPD data-subject requests
    lgpd_code_ttl_minutes: int = 15
    lgpd_request_cooldown_hours: int = 24
    lgpd_contact_email: str = "lgpd@example.com"

    # HR alerts
    hr_notification_emails: str = ""
    hr_notification_phone: str = ""

    # External admission system
    admission_api_url: str = ""
    admission_api_key: str = ""
    http_timeout_seconds: float = 30.0

    # Outbox
    outbox_max_attempts: int = 3
    outbox_retry_backoff_seconds: float = 1.0
    outbox_claim_timeout_seconds: int = 10 * 60

    @property
    def hr_emails(self) -> list[str]:
        return [e.strip() for e in self.hr_notification_emails.split(",") if e.strip()]

    @property
    def origins(self) -> list[str]:
        raw = self.allowed_origins.strip()
        if raw == "*":
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]

    model_config = {"env_prefix": "ADMISSION_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
