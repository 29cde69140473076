from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SqlEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from doorlock.db.base import Base


class CodeType(str, Enum):
    otp = "otp"
    static = "static"


class AccessCode(Base):
    __tablename__ = "access_codes"

    code: Mapped[str] = mapped_column(String(16), primary_key=True)
    type: Mapped[CodeType] = mapped_column(SqlEnum(CodeType), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
