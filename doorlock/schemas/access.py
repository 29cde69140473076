from pydantic import AliasChoices, BaseModel, Field


class CodeCreate(BaseModel):
    code: str
    ttlSeconds: int = Field(validation_alias=AliasChoices("ttlSeconds", "ttl_seconds", "ttl"))
    type: str = "otp"


class CodeDelete(BaseModel):
    code: str


class CardEnroll(BaseModel):
    id: str | None = None


class CardDisenroll(BaseModel):
    id: str


class UnlockRequest(BaseModel):
    code: str
