from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator


class LoginRequest(BaseModel):
    username: str
    password: str


class GuestRegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str
    fullName: str = Field(validation_alias=AliasChoices("fullName", "full_name"), min_length=1, max_length=120)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=32)

    @field_validator("username")
    @classmethod
    def _normalize_username(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned or any(ch.isspace() for ch in cleaned):
            raise ValueError("username must not contain whitespace")
        return cleaned

    @field_validator("email", "phone", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AuthUser(BaseModel):
    id: str
    username: str
    fullName: str
    email: str | None = None
    phone: str | None = None
    type: str
    role: str


class AuthResponse(BaseModel):
    success: bool = True
    token: str
    user: AuthUser
