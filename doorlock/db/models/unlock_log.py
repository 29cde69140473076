from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from doorlock.db.base import Base


class UnlockMethod(str, Enum):
    password = "password"
    nfc = "nfc"
    esp32_pin = "esp32_pin"
    esp32_nfc = "esp32_nfc"


class UnlockLog(Base):
    __tablename__ = "unlock_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    method: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    user_name: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
