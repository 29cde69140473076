# tests/test_device.py
from datetime import datetime, timedelta

import pytest
from fastapi import status

from doorlock.core.exceptions import ConflictError
from doorlock.db.models import UnlockLog
from doorlock.services.scan_service import PURPOSE_ENROLL, PURPOSE_REQUEST, ScanRegistry


class TestDeviceBridge:
    def test_device_key_required(self, client):
        assert client.get("/api/device/scan-status").status_code == status.HTTP_401_UNAUTHORIZED
        response = client.get("/api/device/scan-status", headers={"X-Device-Key": "wrong"})
        assert response.json() == {"error": "Invalid device key"}

    def test_scan_status_follows_arming(self, client, admin_headers, device_headers):
        assert client.get("/api/device/scan-status", headers=device_headers).json() == {"armed": False}

        scan_id = client.post("/api/enroll", json={}, headers=admin_headers).json()["scanId"]
        body = client.get("/api/device/scan-status", headers=device_headers).json()
        assert body["armed"] is True
        assert body["purpose"] == "enroll"
        assert body["scanId"] == scan_id

    def test_armed_enrolment_completes_on_scan(self, client, admin_headers, device_headers, emitted):
        scan_id = client.post("/api/enroll", json={}, headers=admin_headers).json()["scanId"]

        response = client.post("/api/device/nfc-scanned", json={"nfcId": "04C0FFEE"}, headers=device_headers)
        assert response.status_code == 200
        assert response.json()["enrolled"] is True

        assert emitted.events() == ["nfc-detected", "nfc-update"]
        assert emitted.payloads("nfc-detected") == [{"nfcId": "04C0FFEE", "scanId": scan_id}]
        cards = client.get("/api/active-nfc-cards", headers=admin_headers).json()
        assert [card["id"] for card in cards] == ["04C0FFEE"]
        # The scan is spent.
        assert client.get("/api/device/scan-status", headers=device_headers).json() == {"armed": False}

    def test_enrolling_known_card_reports_error(self, client, admin_headers, device_headers, emitted):
        client.post("/api/enroll", json={"id": "04C0FFEE"}, headers=admin_headers)
        client.post("/api/enroll", json={}, headers=admin_headers)

        response = client.post("/api/device/nfc-scanned", json={"nfc_id": "04C0FFEE"}, headers=device_headers)
        assert response.status_code == 200
        assert response.json()["error"] == "Card already enrolled"
        assert emitted.payloads("nfc-detected")[0]["error"] == "Card already enrolled"

    def test_unarmed_scan_is_only_a_notice(self, client, device_headers, emitted):
        response = client.post("/api/device/nfc-scanned", json={"id": "04ABCDEF"}, headers=device_headers)
        assert response.json() == {"armed": False, "nfcId": "04ABCDEF"}
        assert emitted.events() == ["nfc-detected"]

    def test_pin_entered_notice(self, client, device_headers, emitted):
        response = client.post("/api/device/pin-entered", json={"pin": "1234"}, headers=device_headers)
        assert response.json() == {"ok": True}
        assert emitted.payloads("pin-entered") == [{"pin": "1234"}]
        assert emitted.rooms("pin-entered") == ["admins"]

    def test_device_unlock_logs_device_method(self, client, db_session, admin_headers, device_headers):
        client.post("/api/create-code", json={"code": "246810", "ttlSeconds": 60, "type": "static"}, headers=admin_headers)

        response = client.post("/api/device/unlock", json={"code": "246810", "source": "pin"}, headers=device_headers)
        assert response.json() == {"method": "pin"}

        denied = client.post("/api/device/unlock", json={"code": "FFFF0000", "source": "nfc"}, headers=device_headers)
        assert denied.status_code == 401

        methods = [row.method for row in db_session.query(UnlockLog).order_by(UnlockLog.id).all()]
        assert methods == ["esp32_pin", "esp32_nfc"]

    def test_device_unlock_rejects_unknown_source(self, client, device_headers):
        response = client.post("/api/device/unlock", json={"code": "123456", "source": "voice"}, headers=device_headers)
        assert response.status_code == 400

    def test_only_one_scan_armed(self, client, admin_headers, guest_headers):
        request_id = client.post(
            "/api/guest/request-nfc",
            json={"reason": "visit", "durationHours": 1},
            headers=guest_headers,
        ).json()["id"]
        client.post("/api/enroll", json={}, headers=admin_headers)

        response = client.post("/api/admin/scan-nfc", json={"requestId": request_id}, headers=admin_headers)
        assert response.status_code == status.HTTP_409_CONFLICT


class TestScanRegistry:
    def test_rearm_same_target_extends(self):
        registry = ScanRegistry(timeout_seconds=60)
        first = registry.arm(PURPOSE_REQUEST, "admin", request_id="r1")
        again = registry.arm(PURPOSE_REQUEST, "admin", request_id="r1")
        assert again.scan_id == first.scan_id

        with pytest.raises(ConflictError):
            registry.arm(PURPOSE_REQUEST, "admin", request_id="r2")

    def test_lapsed_scan_frees_reader(self):
        registry = ScanRegistry(timeout_seconds=60)
        scan = registry.arm(PURPOSE_ENROLL, "admin")
        scan.expires_at = datetime.utcnow() - timedelta(seconds=1)

        assert registry.peek() is None
        assert registry.arm(PURPOSE_REQUEST, "admin", request_id="r1").purpose == PURPOSE_REQUEST

    def test_complete_pops_and_cancel_matches_id(self):
        registry = ScanRegistry(timeout_seconds=60)
        scan = registry.arm(PURPOSE_ENROLL, "admin")
        assert registry.cancel("other") is False
        assert registry.complete() is scan
        assert registry.complete() is None
