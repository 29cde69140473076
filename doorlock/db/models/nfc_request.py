import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from doorlock.db.base import Base


class RequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


class AccessType(str, Enum):
    pin = "pin"
    nfc = "nfc"


class NfcRequest(Base):
    __tablename__ = "nfc_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    guest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[RequestStatus] = mapped_column(
        SqlEnum(RequestStatus), nullable=False, default=RequestStatus.pending, index=True
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    access_type: Mapped[AccessType | None] = mapped_column(SqlEnum(AccessType), nullable=True)
    nfc_card_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    pin_code: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)
    scanned_nfc_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    guest = relationship("User", back_populates="nfc_requests")
