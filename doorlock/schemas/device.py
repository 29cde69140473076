from pydantic import AliasChoices, BaseModel, Field


class NfcScanned(BaseModel):
    nfcId: str = Field(validation_alias=AliasChoices("nfcId", "nfc_id", "id"))


class PinEntered(BaseModel):
    pin: str


class DeviceUnlock(BaseModel):
    code: str
    source: str = "pin"
