from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from doorlock.core.exceptions import ValidationError
from doorlock.db.models import UnlockLog

SORT_COLUMNS = {
    "time": UnlockLog.time,
    "date": UnlockLog.time,
    "user_name": UnlockLog.user_name,
    "method": UnlockLog.method,
    "success": UnlockLog.success,
}
FILTER_FIELDS = {"method", "user_name", "success"}
TRUE_VALUES = {"1", "true", "yes", "success"}
FALSE_VALUES = {"0", "false", "no", "failed", "failure"}
MAX_PAGE_SIZE = 200


def serialize_log(row: UnlockLog) -> dict[str, Any]:
    return {
        "id": row.id,
        "method": row.method,
        "code": row.code,
        "time": row.time.isoformat(),
        "success": bool(row.success),
        "userId": row.user_id,
        "userName": row.user_name,
    }


def append_log(
    db: Session,
    method: str,
    code: str,
    success: bool,
    user_id: str | None = None,
    user_name: str | None = None,
) -> UnlockLog:
    row = UnlockLog(
        method=method,
        code=code,
        success=success,
        user_id=user_id,
        user_name=user_name,
        time=datetime.utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationError("filterValue for success must be 1/0/true/false")


def _parse_bound(value: str | None, name: str, end_of_day: bool = False) -> datetime | None:
    if not value:
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 date") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if end_of_day and len(raw) == 10:
        # A bare date as the upper bound covers that whole day.
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed


def list_logs(
    db: Session,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "time",
    sort_order: str = "desc",
    filter_by: str | None = None,
    filter_value: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(f"Invalid sortBy: {sort_by}")
    if sort_order not in {"asc", "desc"}:
        raise ValidationError(f"Invalid sortOrder: {sort_order}")
    if filter_by and filter_by not in FILTER_FIELDS:
        raise ValidationError(f"Invalid filterBy: {filter_by}")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    query = db.query(UnlockLog)
    if user_id is not None:
        query = query.filter(UnlockLog.user_id == user_id)

    if filter_by and filter_value not in (None, ""):
        if filter_by == "success":
            query = query.filter(UnlockLog.success == _parse_bool(filter_value))
        elif filter_by == "method":
            query = query.filter(UnlockLog.method == filter_value.strip())
        else:
            term = f"%{_escape_like(filter_value.strip().lower())}%"
            query = query.filter(func.lower(UnlockLog.user_name).like(term, escape="\\"))

    start = _parse_bound(start_date, "startDate")
    end = _parse_bound(end_date, "endDate", end_of_day=True)
    if start and end and start > end:
        raise ValidationError("startDate must not be after endDate")
    if start:
        query = query.filter(UnlockLog.time >= start)
    if end:
        query = query.filter(UnlockLog.time <= end)

    total = query.count()

    column = SORT_COLUMNS[sort_by]
    tie_breaker = UnlockLog.id
    if sort_order == "asc":
        query = query.order_by(column.asc(), tie_breaker.asc())
    else:
        query = query.order_by(column.desc(), tie_breaker.desc())

    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "logs": [serialize_log(row) for row in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }
