"""
Tests: HTTP surface of the lot workflow (blueprints + error envelope).
"""

import pytest

LOT_BODY = {
    "partName": "Elastic Rail Clip",
    "factoryName": "Northern Fastenings",
    "lotNumber": "ERC-0200",
    "supplyDate": "2025-12-01",
    "manufacturingDate": "2025-11-15",
    "warrantyPeriod": "5 years",
}


def _error(res, status, kind):
    assert res.status_code == status
    body = res.get_json()
    assert body["success"] is False
    assert body["kind"] == kind
    return body


# ── Authentication ───────────────────────────────────────────────────────────


class TestAuthentication:
    def test_missing_bearer_is_401(self, client, lot):
        res = client.get("/api/v1/lots/LOT001")
        body = _error(res, 401, "Unauthenticated")
        assert body["code"] == "ERR_UNAUTHENTICATED"

    def test_invalid_bearer_is_401(self, client, lot):
        res = client.get("/api/v1/lots/LOT001", headers={"Authorization": "Bearer not-a-jwt"})
        body = _error(res, 401, "Unauthenticated")
        assert body["error"] == "Invalid bearer token"

    def test_health_needs_no_identity(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert res.headers["X-Request-ID"]


# ── Lots ─────────────────────────────────────────────────────────────────────


class TestLots:
    def test_vendor_creates_lot(self, client, auth_headers):
        res = client.post("/api/v1/lots", json=LOT_BODY, headers=auth_headers("V1"))
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["status"] == "pending"
        assert data["vendor_id"] == "V1"
        assert data["audit_trail"] == []

    def test_create_lot_missing_fields(self, client, auth_headers):
        body = dict(LOT_BODY)
        del body["lotNumber"]
        res = client.post("/api/v1/lots", json=body, headers=auth_headers("V1"))
        err = _error(res, 400, "MissingFields")
        assert err["details"]["fields"] == ["lot_number"]

    def test_duplicate_lot_number_is_409(self, client, auth_headers):
        client.post("/api/v1/lots", json=LOT_BODY, headers=auth_headers("V1"))
        res = client.post("/api/v1/lots", json=LOT_BODY, headers=auth_headers("V1"))
        _error(res, 409, "Conflict")

    def test_non_json_body_is_415(self, client, auth_headers):
        res = client.post(
            "/api/v1/lots", data="partName=x", content_type="text/plain", headers=auth_headers("V1"),
        )
        assert res.status_code == 415

    def test_unknown_lot_is_404(self, client, auth_headers):
        res = client.get("/api/v1/lots/NOPE", headers=auth_headers("D1"))
        _error(res, 404, "NotFound")

    def test_other_vendor_cannot_read_without_token(self, client, lot, auth_headers):
        res = client.get("/api/v1/lots/LOT001", headers=auth_headers("V2"))
        _error(res, 403, "Forbidden")


# ── Status ───────────────────────────────────────────────────────────────────


class TestStatus:
    def test_depot_staff_accepts(self, client, lot, auth_headers):
        res = client.put(
            "/api/v1/lots/LOT001/status",
            json={"status": "accepted", "notes": "sample ok"},
            headers=auth_headers("D1"),
        )
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["status"] == "accepted"
        assert len(data["audit_trail"]) == 1
        assert data["audit_trail"][0]["metadata"]["previousStatus"] == "pending"

    def test_vendor_is_forbidden(self, client, lot, auth_headers):
        res = client.put(
            "/api/v1/lots/LOT001/status", json={"status": "accepted"}, headers=auth_headers("V1"),
        )
        body = _error(res, 403, "Forbidden")
        assert body["error"] == "Only depot staff can change lot status"

    def test_unknown_status(self, client, lot, auth_headers):
        res = client.put(
            "/api/v1/lots/LOT001/status", json={"status": "shipped"}, headers=auth_headers("D1"),
        )
        _error(res, 400, "InvalidStatus")


# ── Access tokens ────────────────────────────────────────────────────────────


class TestAccessTokens:
    def test_generated_token_grants_read(self, client, lot, auth_headers):
        res = client.post("/api/v1/lots/LOT001/generate-qr", headers=auth_headers("V1"))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["qrImageDataUrl"].startswith("data:image/png;base64,")
        token = data["qrToken"]

        res = client.get(f"/api/v1/lots/LOT001?token={token}", headers=auth_headers("V2"))
        assert res.status_code == 200
        trail = res.get_json()["data"]["audit_trail"]
        assert [e["action"] for e in trail] == ["qr_generated"]
        assert token not in res.get_data(as_text=True)

    def test_bogus_token_is_401(self, client, lot, auth_headers):
        res = client.get("/api/v1/lots/LOT001?token=bogus", headers=auth_headers("V2"))
        _error(res, 401, "TokenNotFound")

    def test_non_ascii_token_is_401(self, client, lot, auth_headers):
        client.post("/api/v1/lots/LOT001/generate-qr", headers=auth_headers("V1"))
        res = client.get("/api/v1/lots/LOT001?token=caf%C3%A9", headers=auth_headers("D1"))
        _error(res, 401, "TokenNotFound")

        res = client.get(
            "/api/v1/lots/LOT001/access-tokens/validate?token=caf%C3%A9", headers=auth_headers("D1"),
        )
        assert res.get_json()["data"]["reason"] == "TokenNotFound"

    def test_non_owner_cannot_generate(self, client, lot, auth_headers):
        res = client.post("/api/v1/lots/LOT001/generate-qr", headers=auth_headers("V2"))
        body = _error(res, 403, "Forbidden")
        assert body["error"] == "Access denied. You can only generate QR codes for your own lots."

    def test_validate_endpoint(self, client, lot, auth_headers):
        token = client.post(
            "/api/v1/lots/LOT001/generate-qr", headers=auth_headers("V1"),
        ).get_json()["data"]["qrToken"]

        ok = client.get(
            f"/api/v1/lots/LOT001/access-tokens/validate?token={token}", headers=auth_headers("T1"),
        ).get_json()["data"]
        assert ok["valid"] is True

        bad = client.get(
            "/api/v1/lots/LOT001/access-tokens/validate?token=nope", headers=auth_headers("T1"),
        ).get_json()["data"]
        assert bad == {"valid": False, "reason": "TokenNotFound", "expiresAt": None}

    def test_validate_requires_token(self, client, lot, auth_headers):
        res = client.get("/api/v1/lots/LOT001/access-tokens/validate", headers=auth_headers("T1"))
        _error(res, 400, "MissingFields")

    def test_scan_resolves_lot(self, client, lot, auth_headers):
        issued = client.post(
            "/api/v1/lots/LOT001/generate-qr", headers=auth_headers("V1"),
        ).get_json()["data"]
        res = client.post(
            "/api/v1/scan",
            json={"qrData": issued["qrData"], "token": issued["qrToken"]},
            headers=auth_headers("V2"),
        )
        assert res.status_code == 200
        assert res.get_json()["data"]["id"] == "LOT001"


# ── Field workflows ──────────────────────────────────────────────────────────


class TestFieldWorkflows:
    def test_install(self, client, lot, auth_headers):
        res = client.post(
            "/api/v1/lots/LOT001/install",
            json={"location": "Km 12", "section": "S3"},
            headers=auth_headers("T1"),
        )
        assert res.status_code == 200
        assert res.get_json()["data"]["audit_trail"][0]["action"] == "installation_recorded"

    def test_invalid_inspection_condition(self, client, lot, auth_headers):
        res = client.post(
            "/api/v1/lots/LOT001/inspection", json={"condition": "fine"}, headers=auth_headers("I1"),
        )
        body = _error(res, 400, "InvalidCondition")
        assert body["error"] == "Valid condition is required (good, worn, replace)"

    def test_replacement_request_then_review(self, client, lot, auth_headers):
        res = client.post(
            "/api/v1/lots/LOT001/replacement-request",
            json={"reason": "defective", "description": "cracked"},
            headers=auth_headers("I1"),
        )
        assert res.status_code == 201
        req = res.get_json()["data"]
        assert req["status"] == "pending"
        assert req["priority"] == "medium"

        res = client.post(
            f"/api/v1/replacement-requests/{req['id']}/review",
            json={"decision": "approved"},
            headers=auth_headers("D1"),
        )
        assert res.status_code == 200
        assert res.get_json()["data"]["status"] == "approved"

        res = client.post(
            f"/api/v1/replacement-requests/{req['id']}/complete", json={}, headers=auth_headers("D1"),
        )
        assert res.get_json()["data"]["status"] == "completed"

    def test_replacement_request_missing_description(self, client, lot, auth_headers):
        res = client.post(
            "/api/v1/lots/LOT001/replacement-request",
            json={"reason": "defective"},
            headers=auth_headers("T1"),
        )
        body = _error(res, 400, "MissingFields")
        assert body["error"] == "Reason and description are required"

    def test_replacement_request_structured_description_is_400(self, client, lot, auth_headers):
        res = client.post(
            "/api/v1/lots/LOT001/replacement-request",
            json={"reason": "defective", "description": {"text": "cracked"}},
            headers=auth_headers("I1"),
        )
        body = _error(res, 400, "InvalidField")
        assert body["details"]["field"] == "description"

    def test_parts_round(self, client, lot, auth_headers):
        res = client.post("/api/v1/lots/LOT001/parts", json={"quantity": 2}, headers=auth_headers("V1"))
        assert res.status_code == 201
        assert res.get_json()["data"]["count"] == 2

        res = client.get("/api/v1/lots/LOT001/parts?installed=false", headers=auth_headers("T1"))
        assert res.get_json()["data"]["count"] == 2

    def test_part_install(self, client, lot, auth_headers):
        part = client.post(
            "/api/v1/lots/LOT001/parts", json={"quantity": 1}, headers=auth_headers("V1"),
        ).get_json()["data"]["parts"][0]

        res = client.post(
            f"/api/v1/parts/{part['id']}/install",
            json={"location": "Km 12", "section": "S3"},
            headers=auth_headers("T1"),
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Part installed successfully"
        assert body["data"]["is_installed"] is True
        assert body["data"]["installation"]["installedBy"] == "T1"

        res = client.post(
            f"/api/v1/parts/{part['id']}/install",
            json={"location": "Km 13", "section": "S3"},
            headers=auth_headers("T1"),
        )
        err = _error(res, 400, "InvalidStatus")
        assert err["error"] == "Part is already installed"

        res = client.get("/api/v1/lots/LOT001/parts?installed=true", headers=auth_headers("D1"))
        assert res.get_json()["data"]["count"] == 1

    def test_part_install_unknown_part_is_404(self, client, lot, auth_headers):
        res = client.post(
            "/api/v1/parts/PRT-NOPE/install",
            json={"location": "Km 12", "section": "S3"},
            headers=auth_headers("T1"),
        )
        _error(res, 404, "NotFound")


# ── Audit & history reads ────────────────────────────────────────────────────


class TestReads:
    @pytest.fixture()
    def worked_lot(self, client, lot, auth_headers):
        client.put("/api/v1/lots/LOT001/status", json={"status": "accepted"}, headers=auth_headers("D1"))
        client.post(
            "/api/v1/lots/LOT001/install",
            json={"location": "Km 1", "section": "A"},
            headers=auth_headers("T1"),
        )
        return lot

    def test_audit_filter_by_action(self, client, worked_lot, auth_headers):
        res = client.get("/api/v1/lots/LOT001/audit?action=installation_recorded", headers=auth_headers("D1"))
        data = res.get_json()["data"]
        assert data["count"] == 1
        assert data["entries"][0]["actor_id"] == "T1"

    def test_audit_rejects_bad_since(self, client, worked_lot, auth_headers):
        res = client.get("/api/v1/lots/LOT001/audit?since=yesterday", headers=auth_headers("D1"))
        _error(res, 400, "InvalidField")

    def test_my_history(self, client, worked_lot, auth_headers):
        res = client.get("/api/v1/users/me/history?targetType=lot", headers=auth_headers("T1"))
        data = res.get_json()["data"]
        assert [e["action"] for e in data["entries"]] == ["install_lot"]

    def test_me(self, client, actors, auth_headers):
        res = client.get("/api/v1/users/me", headers=auth_headers("I1"))
        data = res.get_json()["data"]
        assert data["role"] == "inspector"
        assert data["role_name"] == "Inspector"
