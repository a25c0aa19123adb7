from pydantic import BaseModel, field_validator

from admission.utils.text import only_digits


class CandidateCreate(BaseModel):
    nome: str
    cpf: str
    email: str
    telefone: str | None = None
    data_nascimento: str | None = None
    estado: str | None = None
    cidade: str | None = None
    bairro: str | None = None
    curriculo_url: str | None = None
    vaga_id: int | None = None

    @field_validator("cpf")
    @classmethod
    def cpf_has_eleven_digits(cls, value: str) -> str:
        digits = only_digits(value)
        if len(digits) != 11:
            raise ValueError("CPF deve ter 11 dígitos")
        return digits


class CandidateStatusUpdate(BaseModel):
    status: str


class CandidateResponse(BaseModel):
    id: int
    nome: str
    cpf: str
    email: str
    telefone: str | None
    data_nascimento: str | None
    estado: str | None
    cidade: str | None
    bairro: str | None
    curriculo_url: str | None
    vaga_id: int | None
    vaga_titulo: str | None
    status: str
    raca: str | None
    created_at: str
    updated_at: str


class CandidateListResponse(BaseModel):
    candidatos: list[CandidateResponse]
    total: int
    page: int
    per_page: int
