from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from doorlock.db.base import Base


class NfcCard(Base):
    __tablename__ = "nfc_cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enrolled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
