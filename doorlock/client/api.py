"""Async HTTP client for the gateway.

Every non-2xx response is raised as the matching ``AppException`` subclass;
transport failures become ``TransientNetworkError``. Nothing is retried
automatically, since a repeated mutation could apply twice.
"""
import logging
from typing import Any

import httpx

from doorlock.client.session import ClientSession
from doorlock.core.exceptions import AppException, TransientNetworkError, exception_for_status

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class LockApiClient:
    def __init__(
        self,
        session: ClientSession,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.session = session
        self._http = httpx.AsyncClient(base_url=session.base_url, transport=transport, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        headers = self.session.auth_headers() if authenticated else {}
        try:
            response = await self._http.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"Gateway unreachable: {exc.__class__.__name__}") from exc

        if response.is_success:
            return response.json() if response.content else None

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = (body or {}).get("error") or response.reason_phrase or "Request failed"
        raise exception_for_status(response.status_code, message)

    # auth

    async def login(self, username: str, password: str, role: str = "admin") -> dict:
        data = await self._request(
            "POST",
            f"/auth/{role}/login",
            json={"username": username, "password": password},
            authenticated=False,
        )
        self.session.store(data["token"], data.get("user"))
        return data

    async def register(self, username: str, password: str, full_name: str, **extra: Any) -> dict:
        # Registration never yields a token; the account waits for approval.
        payload = {"username": username, "password": password, "fullName": full_name, **extra}
        return await self._request("POST", "/auth/guest/register", json=payload, authenticated=False)

    async def verify(self) -> bool:
        """Check the stored token; an invalid or unverifiable one is dropped."""
        if not self.session.token:
            return False
        try:
            data = await self._request("POST", "/auth/verify")
        except AppException as exc:
            logger.info("session verification failed, clearing credentials: %s", exc.message)
            self.session.clear()
            return False
        if not data or not data.get("valid"):
            self.session.clear()
            return False
        self.session.user = data.get("user") or self.session.user
        return True

    async def refresh(self) -> str | None:
        try:
            data = await self._request("POST", "/auth/refresh")
        except AppException as exc:
            logger.info("token refresh failed, logging out: %s", exc.message)
            await self.logout()
            return None
        self.session.store(data["token"])
        return data["token"]

    async def logout(self) -> None:
        try:
            if self.session.token:
                await self._request("POST", "/auth/logout")
        except AppException as exc:
            logger.warning("server logout failed, clearing local session anyway: %s", exc.message)
        finally:
            self.session.clear()

    # codes and cards

    async def create_code(self, code: str, ttl_seconds: int, code_type: str = "otp") -> dict:
        return await self._request(
            "POST", "/create-code", json={"code": code, "ttlSeconds": ttl_seconds, "type": code_type}
        )

    async def delete_code(self, code: str) -> dict:
        return await self._request("POST", "/delete-code", json={"code": code})

    async def list_codes(self) -> list[dict]:
        return await self._request("GET", "/active-passwords")

    async def enroll_card(self, card_id: str | None = None) -> dict:
        body = {"id": card_id} if card_id else {}
        return await self._request("POST", "/enroll", json=body)

    async def disenroll_card(self, card_id: str) -> dict:
        return await self._request("POST", "/disenroll", json={"id": card_id})

    async def list_cards(self) -> list[dict]:
        return await self._request("GET", "/active-nfc-cards")

    async def unlock(self, code: str) -> dict:
        return await self._request("POST", "/unlock", json={"code": code})

    async def list_logs(self, **query: Any) -> dict:
        params = {key: value for key, value in query.items() if value not in (None, "")}
        return await self._request("GET", "/logs", params=params)

    # guest

    async def submit_request(self, reason: str, duration_hours: int) -> dict:
        return await self._request(
            "POST", "/guest/request-nfc", json={"reason": reason, "durationHours": duration_hours}
        )

    async def my_requests(self) -> list[dict]:
        return await self._request("GET", "/guest/my-requests")

    async def my_logs(self, page: int = 1, limit: int = 20) -> dict:
        return await self._request("GET", "/guest/my-logs", params={"page": page, "limit": limit})

    # admin

    async def list_guests(self) -> list[dict]:
        return await self._request("GET", "/admin/guests")

    async def pending_guests(self) -> list[dict]:
        return await self._request("GET", "/admin/guests/pending")

    async def decide_guest(self, guest_id: str, action: str = "approve") -> dict:
        return await self._request("POST", f"/admin/guests/{guest_id}/approve", json={"action": action})

    async def toggle_guest(self, guest_id: str) -> dict:
        return await self._request("POST", f"/admin/guests/{guest_id}/toggle")

    async def delete_guest(self, guest_id: str) -> dict:
        return await self._request("DELETE", f"/admin/guests/{guest_id}")

    async def assign_pin(self, guest_id: str, pin: str | None = None) -> dict:
        return await self._request("POST", f"/admin/guests/{guest_id}/assign-pin", json={"pin": pin})

    async def remove_pin(self, guest_id: str) -> dict:
        return await self._request("DELETE", f"/admin/guests/{guest_id}/pin")

    async def list_requests(self) -> list[dict]:
        return await self._request("GET", "/admin/nfc-requests")

    async def respond_to_request(
        self,
        request_id: str,
        action: str,
        access_type: str | None = None,
        nfc_card_id: str | None = None,
        admin_notes: str | None = None,
    ) -> dict:
        payload = {
            "action": action,
            "accessType": access_type,
            "nfcCardId": nfc_card_id,
            "adminNotes": admin_notes,
        }
        return await self._request("POST", f"/admin/nfc-request/{request_id}/respond", json=payload)

    async def scan_nfc(self, request_id: str) -> dict:
        return await self._request("POST", "/admin/scan-nfc", json={"requestId": request_id})
