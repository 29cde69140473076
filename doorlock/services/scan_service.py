"""Arming the physical NFC reader.

The door has one reader, so at most one scan is armed at a time. A scan is
armed either to enrol the next card or to capture a card for a pending guest
request; the detection is correlated back by ``scan_id``.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock

from doorlock.core.config import get_settings
from doorlock.core.exceptions import ConflictError

settings = get_settings()

PURPOSE_ENROLL = "enroll"
PURPOSE_REQUEST = "request"


@dataclass
class ArmedScan:
    purpose: str
    armed_by: str | None
    request_id: str | None = None
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    armed_at: datetime = field(default_factory=datetime.utcnow)
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "scanId": self.scan_id,
            "purpose": self.purpose,
            "requestId": self.request_id,
            "armedAt": self.armed_at.isoformat(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


class ScanRegistry:
    def __init__(self, timeout_seconds: int):
        self.timeout_seconds = timeout_seconds
        self._lock = Lock()
        self._armed: ArmedScan | None = None

    def _current(self, now: datetime) -> ArmedScan | None:
        if self._armed is not None and self._armed.is_expired(now):
            self._armed = None
        return self._armed

    def arm(self, purpose: str, armed_by: str | None, request_id: str | None = None) -> ArmedScan:
        now = datetime.utcnow()
        with self._lock:
            current = self._current(now)
            if current is not None:
                if current.purpose == purpose and current.request_id == request_id:
                    # Re-arming the same target extends the window.
                    current.expires_at = now + timedelta(seconds=self.timeout_seconds)
                    return current
                raise ConflictError("The reader is already waiting for another scan")
            scan = ArmedScan(
                purpose=purpose,
                armed_by=armed_by,
                request_id=request_id,
                armed_at=now,
                expires_at=now + timedelta(seconds=self.timeout_seconds),
            )
            self._armed = scan
            return scan

    def peek(self) -> ArmedScan | None:
        with self._lock:
            return self._current(datetime.utcnow())

    def complete(self) -> ArmedScan | None:
        """Pop the armed scan, if any, for the card that was just presented."""
        with self._lock:
            scan = self._current(datetime.utcnow())
            self._armed = None
            return scan

    def cancel(self, scan_id: str) -> bool:
        with self._lock:
            if self._armed is not None and self._armed.scan_id == scan_id:
                self._armed = None
                return True
            return False

    def reset(self) -> None:
        with self._lock:
            self._armed = None


scan_registry = ScanRegistry(settings.SCAN_TIMEOUT_SECONDS)
