# tests/test_access_codes.py
from datetime import datetime, timedelta

import pytest
from fastapi import status

from doorlock.core.exceptions import ConflictError
from doorlock.db.models import AccessCode, AccessType, CodeType, NfcRequest, RequestStatus
from doorlock.services import access_code_service, unlock_service
from tests.conftest import make_user


class TestAccessCodes:
    """Access code registry over HTTP"""

    def test_create_then_list_contains_code_once(self, client, admin_headers, emitted):
        response = client.post(
            "/api/create-code",
            json={"code": "123456", "ttlSeconds": 300, "type": "otp"},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["code"] == "123456"
        assert body["type"] == "otp"
        assert body["expiresAt"]

        listed = client.get("/api/active-passwords", headers=admin_headers).json()
        assert [row["code"] for row in listed].count("123456") == 1
        assert emitted.events() == ["password-update"]
        assert emitted.rooms("password-update") == ["admins"]

    def test_duplicate_active_code_conflicts(self, client, admin_headers):
        payload = {"code": "654321", "ttlSeconds": 300, "type": "static"}
        assert client.post("/api/create-code", json=payload, headers=admin_headers).status_code == 201

        second = client.post("/api/create-code", json=payload, headers=admin_headers)
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.json() == {"error": "Code already exists"}

        listed = client.get("/api/active-passwords", headers=admin_headers).json()
        assert [row["code"] for row in listed] == ["654321"]

    def test_snake_case_ttl_is_accepted(self, client, admin_headers):
        response = client.post(
            "/api/create-code",
            json={"code": "111222", "ttl_seconds": 60},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["type"] == "otp"

    def test_invalid_codes_are_rejected(self, client, admin_headers):
        for code in ["12345", "1234567", "12a456", "１２３４５６"]:
            response = client.post(
                "/api/create-code",
                json={"code": code, "ttlSeconds": 60},
                headers=admin_headers,
            )
            assert response.status_code == status.HTTP_400_BAD_REQUEST, code
            assert "error" in response.json()

    def test_invalid_ttl_and_type(self, client, admin_headers):
        zero_ttl = client.post("/api/create-code", json={"code": "222333", "ttlSeconds": 0}, headers=admin_headers)
        assert zero_ttl.status_code == 400

        bad_type = client.post(
            "/api/create-code",
            json={"code": "222333", "ttlSeconds": 60, "type": "forever"},
            headers=admin_headers,
        )
        assert bad_type.status_code == 400

    def test_missing_field_renders_error_body(self, client, admin_headers):
        response = client.post("/api/create-code", json={"code": "222333"}, headers=admin_headers)
        assert response.status_code == 400
        assert "ttlSeconds" in response.json()["error"]

    def test_delete_code(self, client, admin_headers, emitted):
        client.post("/api/create-code", json={"code": "777888", "ttlSeconds": 60}, headers=admin_headers)

        response = client.post("/api/delete-code", json={"code": "777888"}, headers=admin_headers)
        assert response.status_code == 200
        assert "message" in response.json()
        assert client.get("/api/active-passwords", headers=admin_headers).json() == []
        assert emitted.events() == ["password-update", "password-update"]

    def test_delete_unknown_code_is_not_found(self, client, admin_headers):
        response = client.post("/api/delete-code", json={"code": "000000"}, headers=admin_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"error": "Code not found"}

    def test_codes_require_admin(self, client, guest_headers):
        assert client.get("/api/active-passwords").status_code == status.HTTP_401_UNAUTHORIZED
        assert client.get("/api/active-passwords", headers=guest_headers).status_code == status.HTTP_403_FORBIDDEN


class TestAccessCodeService:
    def test_expired_code_does_not_block_reuse(self, db_session):
        db_session.add(
            AccessCode(
                code="424242",
                type=CodeType.static,
                expires_at=datetime.utcnow() - timedelta(seconds=1),
            )
        )
        db_session.commit()

        row = access_code_service.create_code(db_session, "424242", 60, "otp")
        assert row.type == CodeType.otp
        assert [r.code for r in access_code_service.list_active_codes(db_session)] == ["424242"]

    def test_consume_otp_only_succeeds_once(self, db_session):
        access_code_service.create_code(db_session, "135790", 60, "otp")
        assert access_code_service.consume_otp(db_session, "135790") is True
        assert access_code_service.consume_otp(db_session, "135790") is False

    def test_consume_otp_leaves_static_codes(self, db_session):
        access_code_service.create_code(db_session, "246802", 60, "static")
        assert access_code_service.consume_otp(db_session, "246802") is False
        assert access_code_service.find_active_code(db_session, "246802") is not None

    def test_generated_pin_avoids_used_values(self, db_session, monkeypatch):
        access_code_service.create_code(db_session, "111111", 60, "static")
        candidates = iter(["111111", "222222"])
        monkeypatch.setattr(access_code_service, "generate_pin", lambda length: next(candidates))

        assert access_code_service.generate_unique_pin(db_session) == "222222"

    def test_guest_pin_cannot_become_a_code(self, db_session):
        make_user(db_session, "carol", full_name="Carol", pin_code="424242")
        with pytest.raises(ConflictError):
            access_code_service.create_code(db_session, "424242", 60, "otp")

        result = unlock_service.attempt_unlock(db_session, "424242")
        assert result.success is True
        assert result.log.user_name == "Carol"
        assert access_code_service.list_active_codes(db_session) == []

    def test_live_request_pin_cannot_become_a_code(self, client, db_session, admin_headers, guest_user):
        db_session.add(
            NfcRequest(
                guest_id=guest_user.id,
                reason="visit",
                expires_at=datetime.utcnow() + timedelta(hours=1),
                status=RequestStatus.approved,
                access_type=AccessType.pin,
                pin_code="515151",
            )
        )
        db_session.commit()

        response = client.post("/api/create-code", json={"code": "515151", "ttlSeconds": 60}, headers=admin_headers)
        assert response.status_code == status.HTTP_409_CONFLICT
