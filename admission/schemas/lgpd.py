from pydantic import BaseModel


class LgpdRequestCreate(BaseModel):
    email: str = ""
    tipo: str = ""
    telefone: str | None = None


class LgpdCodeValidation(BaseModel):
    solicitacao_id: int
    codigo: str


class LgpdErasureRequest(BaseModel):
    motivo: str | None = None


class LgpdRejectionRequest(BaseModel):
    motivo: str = ""


class LgpdRequestResponse(BaseModel):
    id: int
    protocolo: str
    tipo: str
    status: str
    email_solicitante: str
    telefone_solicitante: str | None
    candidato_id: int | None
    candidato_nome: str | None
    codigo_validado: bool
    data_validacao_codigo: str | None
    aprovado_por: int | None
    aprovado_por_nome: str | None
    observacoes: str | None
    motivo_rejeicao: str | None
    hash_comprovante: str | None
    data_conclusao: str | None
    created_at: str
    updated_at: str


class LgpdRequestListResponse(BaseModel):
    total: int
    solicitacoes: list[LgpdRequestResponse]
