from pydantic import BaseModel


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: int
    username: str
    role: str
    name: str | None = None
    email: str | None = None
    organization_id: int | None = None
    is_active: bool
