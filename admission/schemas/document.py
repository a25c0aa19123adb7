from pydantic import BaseModel


class CredentialRequest(BaseModel):
    enviarNotificacao: bool = True


class EthnicityDeclarationRequest(BaseModel):
    raca: str | None = None
    aceiteTermos: bool = False


class DocumentReviewRequest(BaseModel):
    tipo_documento: str
    acao: str
    motivo_rejeicao: str | None = None


class BulkReviewRequest(BaseModel):
    acao: str
    motivo_rejeicao: str | None = None
