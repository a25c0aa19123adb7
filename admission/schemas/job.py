from pydantic import BaseModel


class JobPostingCreate(BaseModel):
    titulo: str
    descricao: str | None = None
    local: str | None = None


class JobPostingUpdate(BaseModel):
    titulo: str | None = None
    descricao: str | None = None
    local: str | None = None
    status: str | None = None


class JobPostingResponse(BaseModel):
    id: int
    titulo: str
    descricao: str | None
    local: str | None
    status: str
    created_at: str
    updated_at: str
    candidate_count: int = 0
