# tests/test_nfc_requests.py
from datetime import datetime, timedelta, timezone

from fastapi import status

from doorlock.db.models import NfcRequest, RequestStatus
from doorlock.services import nfc_request_service
from tests.conftest import bearer, make_user


def submit(client, headers, **body):
    payload = {"reason": "visit", "durationHours": 24, **body}
    return client.post("/api/guest/request-nfc", json=payload, headers=headers)


class TestSubmitRequest:
    def test_submit_and_list_own(self, client, guest_headers, emitted):
        response = submit(client, guest_headers)
        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["status"] == "pending"
        assert body["reason"] == "visit"

        mine = client.get("/api/guest/my-requests", headers=guest_headers).json()
        assert [row["id"] for row in mine] == [body["id"]]
        assert emitted.payloads("new-nfc-request") == [{"guestName": "Alice Guest", "requestId": body["id"]}]

    def test_snake_case_duration(self, client, guest_headers):
        response = client.post(
            "/api/guest/request-nfc",
            json={"reason": "visit", "duration_hours": 2},
            headers=guest_headers,
        )
        assert response.status_code == 201

    def test_explicit_expiry(self, client, guest_headers):
        expires = (datetime.now(timezone.utc) + timedelta(hours=3)).isoformat()
        response = submit(client, guest_headers, durationHours=None, expiresAt=expires)
        assert response.status_code == 201

    def test_empty_reason(self, client, guest_headers):
        assert submit(client, guest_headers, reason="   ").status_code == status.HTTP_400_BAD_REQUEST

    def test_duration_bounds(self, client, guest_headers):
        assert submit(client, guest_headers, durationHours=0).status_code == 400
        assert submit(client, guest_headers, durationHours=24 * 365).status_code == 400

    def test_window_required(self, client, guest_headers):
        response = client.post("/api/guest/request-nfc", json={"reason": "visit"}, headers=guest_headers)
        assert response.status_code == 400

    def test_admin_cannot_submit(self, client, admin_headers):
        assert submit(client, admin_headers).status_code == status.HTTP_403_FORBIDDEN

    def test_guests_only_see_their_own(self, client, db_session, guest_headers):
        submit(client, guest_headers)
        other = make_user(db_session, "mallory")

        assert client.get("/api/guest/my-requests", headers=bearer(db_session, other)).json() == []


class TestRespondToRequest:
    def test_approve_with_generated_pin(self, client, db_session, admin_headers, guest_headers, emitted):
        existing = make_user(db_session, "nina", pin_code="123450")
        request_id = submit(client, guest_headers).json()["id"]

        response = client.post(
            f"/api/admin/nfc-request/{request_id}/respond",
            json={"action": "approve", "accessType": "pin", "adminNotes": "welcome"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "approved"
        assert body["accessType"] == "pin"
        assert body["pinCode"] and len(body["pinCode"]) == 6
        assert body["pinCode"] != existing.pin_code
        assert body["adminNotes"] == "welcome"
        assert body["guestName"] == "Alice Guest"

        payload = emitted.payloads("nfc-request-responded")[0]
        assert payload["status"] == "approved"
        assert payload["guestName"] == "Alice Guest"

        unlock = client.post("/api/unlock", json={"code": body["pinCode"]}, headers=admin_headers)
        assert unlock.json() == {"method": "pin"}

    def test_second_response_conflicts(self, client, admin_headers, guest_headers):
        request_id = submit(client, guest_headers).json()["id"]
        url = f"/api/admin/nfc-request/{request_id}/respond"

        assert client.post(url, json={"action": "reject"}, headers=admin_headers).status_code == 200
        again = client.post(url, json={"action": "approve", "accessType": "pin"}, headers=admin_headers)
        assert again.status_code == status.HTTP_409_CONFLICT

    def test_nfc_approval_needs_a_card(self, client, admin_headers, guest_headers):
        request_id = submit(client, guest_headers).json()["id"]
        url = f"/api/admin/nfc-request/{request_id}/respond"

        missing = client.post(url, json={"action": "approve", "accessType": "nfc"}, headers=admin_headers)
        assert missing.status_code == 400

        granted = client.post(
            url,
            json={"action": "approve", "access_type": "nfc", "nfc_card_id": "B0B0CAFE"},
            headers=admin_headers,
        ).json()
        assert granted["nfcCardId"] == "B0B0CAFE"
        assert client.post("/api/unlock", json={"code": "B0B0CAFE"}, headers=admin_headers).json() == {"method": "nfc"}

    def test_approval_needs_access_type(self, client, admin_headers, guest_headers):
        request_id = submit(client, guest_headers).json()["id"]
        response = client.post(
            f"/api/admin/nfc-request/{request_id}/respond",
            json={"action": "approve"},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_unknown_request(self, client, admin_headers):
        response = client.post(
            "/api/admin/nfc-request/missing/respond",
            json={"action": "reject"},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_response_reaches_the_guest(self, client, admin_headers, guest_user, guest_headers, emitted):
        request_id = submit(client, guest_headers).json()["id"]
        client.post(f"/api/admin/nfc-request/{request_id}/respond", json={"action": "reject"}, headers=admin_headers)
        assert emitted.rooms("nfc-request-responded") == ["admins", f"guest:{guest_user.id}"]


class TestLazyExpiry:
    def test_lapsed_pending_request_expires_on_read(self, client, db_session, admin_headers, guest_user):
        row = NfcRequest(
            guest_id=guest_user.id,
            reason="old",
            requested_at=datetime.utcnow() - timedelta(hours=2),
            expires_at=datetime.utcnow() - timedelta(hours=1),
            status=RequestStatus.pending,
        )
        db_session.add(row)
        db_session.commit()

        listed = client.get("/api/admin/nfc-requests", headers=admin_headers).json()
        assert listed[0]["status"] == "expired"

        response = client.post(
            f"/api/admin/nfc-request/{row.id}/respond",
            json={"action": "approve", "accessType": "pin"},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_expire_only_touches_lapsed_pending(self, db_session, guest_user):
        now = datetime.utcnow()
        live = NfcRequest(guest_id=guest_user.id, reason="live", expires_at=now + timedelta(hours=1))
        lapsed = NfcRequest(guest_id=guest_user.id, reason="lapsed", expires_at=now - timedelta(hours=1))
        db_session.add_all([live, lapsed])
        db_session.commit()

        assert nfc_request_service.expire_lapsed_requests(db_session) == 1
        db_session.expire_all()
        assert live.status == RequestStatus.pending
        assert lapsed.status == RequestStatus.expired


class TestScanForRequest:
    def test_scan_then_approve_uses_scanned_card(self, client, admin_headers, guest_headers, device_headers, emitted):
        request_id = submit(client, guest_headers).json()["id"]

        armed = client.post("/api/admin/scan-nfc", json={"requestId": request_id}, headers=admin_headers)
        assert armed.status_code == 200
        scan_id = armed.json()["scanId"]
        assert armed.json()["requestId"] == request_id

        detected = client.post("/api/device/nfc-scanned", json={"nfcId": "04FEED01"}, headers=device_headers)
        assert detected.json()["requestId"] == request_id
        assert emitted.payloads("nfc-detected") == [{"nfcId": "04FEED01", "scanId": scan_id, "requestId": request_id}]

        # Detection only captures the card; the request is still pending.
        mine = client.get("/api/guest/my-requests", headers=guest_headers).json()
        assert mine[0]["status"] == "pending"
        assert mine[0]["scannedNfcId"] == "04FEED01"

        body = client.post(
            f"/api/admin/nfc-request/{request_id}/respond",
            json={"action": "approve", "accessType": "nfc"},
            headers=admin_headers,
        ).json()
        assert body["nfcCardId"] == "04FEED01"

    def test_scan_for_answered_request_conflicts(self, client, admin_headers, guest_headers):
        request_id = submit(client, guest_headers).json()["id"]
        client.post(f"/api/admin/nfc-request/{request_id}/respond", json={"action": "reject"}, headers=admin_headers)

        response = client.post("/api/admin/scan-nfc", json={"requestId": request_id}, headers=admin_headers)
        assert response.status_code == 409

    def test_responding_disarms_reader(self, client, admin_headers, guest_headers):
        request_id = submit(client, guest_headers).json()["id"]
        client.post("/api/admin/scan-nfc", json={"requestId": request_id}, headers=admin_headers)
        client.post(f"/api/admin/nfc-request/{request_id}/respond", json={"action": "reject"}, headers=admin_headers)

        assert client.get("/api/health").json()["readerArmed"] is False
