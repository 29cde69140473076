"""Keeps a dashboard's cached collections consistent with the gateway.

The cache is advisory. Push events say which collection changed and the
controller re-fetches it; only ``new-log`` entries and device notices are
taken from the event payload. Re-fetches are idempotent, so duplicate or
out-of-order events are harmless.
"""
import asyncio
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from doorlock.client.api import LockApiClient
from doorlock.core.exceptions import AppException, NotFoundError
from doorlock.socket import channels

logger = logging.getLogger(__name__)

LOG_BUFFER_LIMIT = 100
NOTICE_LIMIT = 20
SCAN_BACKLOG_LIMIT = 16

ADMIN_REFETCH_TABLE: dict[str, tuple[str, ...]] = {
    channels.PASSWORD_UPDATE: ("codes",),
    channels.NFC_UPDATE: ("cards",),
    channels.NEW_USER_REGISTRATION: ("pending_guests",),
    channels.USER_APPROVAL_UPDATE: ("guests", "pending_guests"),
    channels.USER_DELETED: ("guests", "pending_guests"),
    channels.NEW_NFC_REQUEST: ("nfc_requests",),
    channels.NFC_REQUEST_RESPONDED: ("nfc_requests",),
}

GUEST_REFETCH_TABLE: dict[str, tuple[str, ...]] = {
    channels.NFC_REQUEST_RESPONDED: ("my_requests",),
}


@dataclass
class Notice:
    event: str
    payload: Any
    received_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ActionResult:
    ok: bool
    message: str
    data: Any = None


@dataclass
class BulkResult:
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class LogBuffer:
    """Newest-first view of unlock log entries, bounded in size."""

    def __init__(self, limit: int = LOG_BUFFER_LIMIT):
        self.limit = limit
        self._entries: deque[dict] = deque(maxlen=limit)
        self.total = 0

    def replace(self, entries: list[dict], total: int | None = None) -> None:
        self._entries = deque(entries[: self.limit], maxlen=self.limit)
        self.total = total if total is not None else len(entries)

    def prepend(self, entry: dict) -> bool:
        entry_id = entry.get("id")
        if entry_id is not None and any(item.get("id") == entry_id for item in self._entries):
            return False
        self._entries.appendleft(entry)
        self.total += 1
        return True

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def entries(self) -> list[dict]:
        return list(self._entries)


class DashboardSync:
    def __init__(self, api: LockApiClient, log_limit: int = LOG_BUFFER_LIMIT, notice_limit: int = NOTICE_LIMIT):
        self.api = api
        self.collections: dict[str, Any] = {}
        self.logs = LogBuffer(log_limit)
        self.log_query: dict[str, Any] = {"page": 1, "limit": 20, "sortBy": "time", "sortOrder": "desc"}
        self.notices: deque[Notice] = deque(maxlen=notice_limit)
        self._generations: dict[str, int] = {}
        self._scan_waiters: OrderedDict[str, asyncio.Future] = OrderedDict()
        self._waiting: set[str] = set()
        self._fetchers: dict[str, Callable[[], Awaitable[Any]]] = {
            "codes": api.list_codes,
            "cards": api.list_cards,
            "guests": api.list_guests,
            "pending_guests": api.pending_guests,
            "nfc_requests": api.list_requests,
            "my_requests": api.my_requests,
        }

    @property
    def refetch_table(self) -> dict[str, tuple[str, ...]]:
        return ADMIN_REFETCH_TABLE if self.api.session.is_admin else GUEST_REFETCH_TABLE

    def _next_generation(self, resource: str) -> int:
        generation = self._generations.get(resource, 0) + 1
        self._generations[resource] = generation
        return generation

    def _is_current(self, resource: str, generation: int) -> bool:
        return self._generations.get(resource) == generation

    async def refresh(self, resource: str) -> bool:
        """Re-fetch one collection; returns False if the result was not applied."""
        fetcher = self._fetchers.get(resource)
        if fetcher is None:
            raise KeyError(resource)

        generation = self._next_generation(resource)
        try:
            data = await fetcher()
        except AppException as exc:
            logger.warning("fetching %s failed: %s", resource, exc.message)
            return False
        if not self._is_current(resource, generation):
            logger.debug("discarding stale %s response", resource)
            return False
        self.collections[resource] = data
        return True

    async def load_logs(self, **query: Any) -> bool:
        if query:
            self.log_query = {**self.log_query, **query}
        params = dict(self.log_query)

        generation = self._next_generation("logs")
        try:
            if self.api.session.is_admin:
                data = await self.api.list_logs(**params)
            else:
                data = await self.api.my_logs(page=params.get("page", 1), limit=params.get("limit", 20))
        except AppException as exc:
            logger.warning("fetching logs failed: %s", exc.message)
            return False
        if not self._is_current("logs", generation):
            logger.debug("discarding stale logs response")
            return False
        self.logs.replace(data["logs"], data["total"])
        return True

    async def bootstrap(self) -> bool:
        """Verify the stored session and load every collection it can see."""
        if not await self.api.verify():
            self.collections.clear()
            self.logs.replace([])
            return False
        await self.refresh_all()
        return True

    async def refresh_all(self) -> None:
        if self.api.session.is_admin:
            resources = ["codes", "cards", "guests", "pending_guests", "nfc_requests"]
        else:
            resources = ["my_requests"]
        await asyncio.gather(*(self.refresh(resource) for resource in resources))
        await self.load_logs()

    async def handle_event(self, event: str, payload: Any = None) -> None:
        if event in channels.EPHEMERAL_EVENTS:
            self.notices.append(Notice(event=event, payload=payload))
            if event == channels.NFC_DETECTED:
                self._resolve_scan(payload or {})
            return

        if event == channels.NEW_LOG:
            if isinstance(payload, dict):
                self.logs.prepend(payload)
            return

        resources = self.refetch_table.get(event)
        if resources is None:
            logger.debug("ignoring event %s", event)
            return
        await asyncio.gather(*(self.refresh(resource) for resource in resources))

    # mutations

    async def _run_action(self, label: str, call: Awaitable[Any], refresh: tuple[str, ...] = ()) -> ActionResult:
        try:
            data = await call
        except AppException as exc:
            logger.info("%s failed: %s", label, exc.message)
            result = ActionResult(ok=False, message=exc.message)
        else:
            message = (data or {}).get("message") if isinstance(data, dict) else None
            result = ActionResult(ok=True, message=message or f"{label} succeeded", data=data)
        for resource in refresh:
            await self.refresh(resource)
        return result

    async def create_code(self, code: str, ttl_seconds: int, code_type: str = "otp") -> ActionResult:
        return await self._run_action(
            f"Create code {code}", self.api.create_code(code, ttl_seconds, code_type), refresh=("codes",)
        )

    async def delete_code(self, code: str) -> ActionResult:
        return await self._run_action(f"Delete code {code}", self.api.delete_code(code), refresh=("codes",))

    async def enroll_card(self, card_id: str | None = None) -> ActionResult:
        result = await self._run_action("Enroll card", self.api.enroll_card(card_id), refresh=("cards",))
        if result.ok and isinstance(result.data, dict) and result.data.get("scanId"):
            self._scan_future(result.data["scanId"])
        return result

    async def disenroll_card(self, card_id: str) -> ActionResult:
        return await self._run_action(f"Disenroll card {card_id}", self.api.disenroll_card(card_id), refresh=("cards",))

    async def unlock(self, code: str) -> ActionResult:
        result = await self._run_action("Unlock", self.api.unlock(code))
        if result.ok:
            result.message = f"Unlocked via {result.data['method']}"
        return result

    async def respond_to_request(self, request_id: str, action: str, **options: Any) -> ActionResult:
        return await self._run_action(
            f"Respond to request {request_id}",
            self.api.respond_to_request(request_id, action, **options),
            refresh=("nfc_requests",),
        )

    async def _delete_each(self, keys: list[str], delete: Callable[[str], Awaitable[Any]]) -> BulkResult:
        outcome = BulkResult()
        results = await asyncio.gather(*(delete(key) for key in keys), return_exceptions=True)
        for key, result in zip(keys, results):
            if isinstance(result, NotFoundError):
                # Already gone is what we wanted.
                outcome.succeeded.append(key)
            elif isinstance(result, AppException):
                outcome.failed[key] = result.message
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.succeeded.append(key)
        return outcome

    async def delete_all_codes(self) -> BulkResult:
        codes = [row["code"] for row in self.collections.get("codes") or []]
        try:
            return await self._delete_each(codes, self.api.delete_code)
        finally:
            await self.refresh("codes")

    async def disenroll_all_cards(self) -> BulkResult:
        cards = [row["id"] for row in self.collections.get("cards") or []]
        try:
            return await self._delete_each(cards, self.api.disenroll_card)
        finally:
            await self.refresh("cards")

    # two-phase reader scans

    def _scan_future(self, scan_id: str) -> asyncio.Future:
        future = self._scan_waiters.get(scan_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._scan_waiters[scan_id] = future
            self._trim_scan_waiters()
        return future

    def _trim_scan_waiters(self) -> None:
        # Oldest entries nobody is waiting on go first.
        for scan_id in list(self._scan_waiters):
            if len(self._scan_waiters) <= SCAN_BACKLOG_LIMIT:
                return
            if scan_id not in self._waiting:
                self._scan_waiters.pop(scan_id).cancel()

    def _resolve_scan(self, payload: dict) -> None:
        scan_id = payload.get("scanId")
        if not scan_id:
            return
        # Kept until waited on; the detection can beat the arm response.
        future = self._scan_future(scan_id)
        if not future.done():
            future.set_result(payload)

    async def arm_scan(self, request_id: str) -> str:
        """Arm the reader for a pending request; returns the scan id to wait on."""
        data = await self.api.scan_nfc(request_id)
        self._scan_future(data["scanId"])
        return data["scanId"]

    async def wait_for_detection(self, scan_id: str, timeout: float) -> dict | None:
        """Wait for the card read that answers ``scan_id``.

        A detection that arrived before this call is returned at once. It only
        captures the card; the request still has to be answered with
        ``respond_to_request``.
        """
        self._waiting.add(scan_id)
        future = self._scan_future(scan_id)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            self._waiting.discard(scan_id)
            self._scan_waiters.pop(scan_id, None)
