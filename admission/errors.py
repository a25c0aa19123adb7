"""Domain errors raised by services and rendered by the API layer."""


class AdmissionError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class Unauthorized(AdmissionError):
    status_code = 401


class InvalidState(AdmissionError):
    status_code = 409


class NotFound(AdmissionError):
    status_code = 404


class UpstreamFailure(AdmissionError):
    status_code = 502


class TooManyAttempts(AdmissionError):
    status_code = 429

    def __init__(self, retry_after_seconds: float):
        super().__init__("Muitas tentativas. Aguarde antes de tentar novamente.")
        self.retry_after_seconds = int(retry_after_seconds) + 1

    def to_dict(self) -> dict:
        return {"error": self.message, "retry_after_seconds": self.retry_after_seconds}


class ValidationFailed(AdmissionError):
    """Input rejected before anything was persisted.

    ``issues`` are plain-language strings meant to be shown to the candidate.
    """

    status_code = 400

    def __init__(self, message: str, issues: list[str] | None = None, details: dict | None = None):
        super().__init__(message)
        self.issues = list(issues or [])
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {
            "error": self.message,
            "motivo": " ".join(self.issues) if self.issues else self.message,
            "issues": self.issues,
        }
        body.update(self.details)
        return body
