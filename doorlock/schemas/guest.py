from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, model_validator


class AccessRequestCreate(BaseModel):
    reason: str = ""
    durationHours: int | None = Field(
        default=None,
        validation_alias=AliasChoices("durationHours", "duration_hours"),
    )
    expiresAt: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("expiresAt", "expires_at"),
    )

    @model_validator(mode="after")
    def _require_window(self):
        if self.durationHours is None and self.expiresAt is None:
            raise ValueError("durationHours or expiresAt is required")
        return self


class AccessRequestRespond(BaseModel):
    action: str
    accessType: str | None = Field(default=None, validation_alias=AliasChoices("accessType", "access_type"))
    nfcCardId: str | None = Field(default=None, validation_alias=AliasChoices("nfcCardId", "nfc_card_id"))
    adminNotes: str | None = Field(default=None, validation_alias=AliasChoices("adminNotes", "admin_notes"))


class ScanArm(BaseModel):
    requestId: str = Field(validation_alias=AliasChoices("requestId", "request_id"))


class GuestApproval(BaseModel):
    action: str = "approve"


class PinAssign(BaseModel):
    pin: str | None = None
