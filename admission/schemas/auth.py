from pydantic import BaseModel


class HrSetupRequest(BaseModel):
    nome: str
    email: str
    senha: str


class HrSetupResponse(BaseModel):
    id: int
    nome: str
    email: str
    perfil: str


class HrLoginRequest(BaseModel):
    email: str
    senha: str


class HrUserInfo(BaseModel):
    id: int
    nome: str
    email: str
    perfil: str


class HrLoginResponse(BaseModel):
    token: str
    expires_in_seconds: int
    usuario: HrUserInfo


class CandidateLoginRequest(BaseModel):
    cpf: str
    senha: str
