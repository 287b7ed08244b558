"""HTTP tests for the key, QR, auth and dashboard routes."""

from keytrack.models.enums import KEYS_ROOM
from keytrack.services import qr_tokens

PASSWORD = "correct-horse-battery"


class TestAuthRoutes:
    def test_register_and_login(self, client):
        registered = client.post("/api/auth/register", json={
            "name": "Dr. Fernando", "email": "Fernando@Example.edu", "password": PASSWORD,
        })
        assert registered.status_code == 201
        assert registered.json()["user"]["role"] == "faculty"
        assert registered.json()["user"]["email"] == "fernando@example.edu"

        login = client.post("/api/auth/login", json={"email": "fernando@example.edu", "password": PASSWORD})
        assert login.status_code == 200
        token = login.json()["token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["user"]["name"] == "Dr. Fernando"

    def test_duplicate_registration(self, client, faculty):
        response = client.post("/api/auth/register", json={
            "name": "Again", "email": faculty.email, "password": PASSWORD,
        })

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_USER"

    def test_bad_password(self, client, faculty):
        response = client.post("/api/auth/login", json={"email": faculty.email, "password": "wrong-password"})

        assert response.status_code == 401
        assert response.json() == {
            "success": False, "code": "AUTHENTICATION_FAILED", "message": "Invalid email or password",
        }

    def test_routes_require_token(self, client, key):
        assert client.get("/api/keys").status_code == 401
        assert client.get("/api/keys", headers={"Authorization": "Bearer nope"}).status_code == 401


class TestKeyRoutes:
    def test_list_and_filter(self, client, make_key, faculty, auth_headers):
        make_key("LAB-1", category="lab")
        make_key("CSE-1", category="classroom")
        headers = auth_headers(faculty)

        everything = client.get("/api/keys", headers=headers).json()
        labs = client.get("/api/keys", params={"category": "lab"}, headers=headers).json()

        assert everything["total"] == 2
        assert [k["keyNumber"] for k in everything["data"]] == ["CSE-1", "LAB-1"]
        assert [k["keyNumber"] for k in labs["data"]] == ["LAB-1"]

    def test_take_return_cycle(self, client, key, faculty, auth_headers):
        headers = auth_headers(faculty)

        taken = client.post(f"/api/keys/{key.id}/take", headers=headers)
        assert taken.status_code == 200
        assert taken.json()["data"]["status"] == "unavailable"
        assert taken.json()["data"]["holder"]["userId"] == faculty.user_id

        mine = client.get("/api/keys/my-taken", headers=headers).json()
        assert [k["id"] for k in mine["data"]] == [key.id]

        returned = client.post(f"/api/keys/{key.id}/return", headers=headers)
        assert returned.status_code == 200
        assert returned.json()["data"]["holder"] is None
        assert returned.json()["originalHolder"]["userId"] == faculty.user_id

    def test_second_take_is_a_conflict(self, client, key, faculty, other_faculty, auth_headers):
        client.post(f"/api/keys/{key.id}/take", headers=auth_headers(faculty))

        response = client.post(f"/api/keys/{key.id}/take", headers=auth_headers(other_faculty))

        assert response.status_code == 409
        assert response.json()["code"] == "KEY_NOT_AVAILABLE"
        assert response.json()["success"] is False

    def test_role_errors(self, client, key, faculty, security, auth_headers):
        assert client.post(f"/api/keys/{key.id}/take", headers=auth_headers(security)).status_code == 403
        assert client.post("/api/keys", json={"keyNumber": "X-1", "keyName": "X", "location": "Y"},
                           headers=auth_headers(faculty)).status_code == 403
        assert client.get("/api/keys/missing", headers=auth_headers(faculty)).status_code == 404

    def test_collective_return(self, client, key, faculty, security, auth_headers):
        client.post(f"/api/keys/{key.id}/take", headers=auth_headers(faculty))

        response = client.post(f"/api/keys/{key.id}/collective-return", json={"reason": "end of day"},
                               headers=auth_headers(security))

        assert response.status_code == 200
        assert response.json()["originalHolder"]["userId"] == faculty.user_id
        assert response.json()["data"]["status"] == "available"

    def test_collective_return_without_body(self, client, key, faculty, security, auth_headers):
        client.post(f"/api/keys/{key.id}/take", headers=auth_headers(faculty))

        response = client.post(f"/api/keys/{key.id}/collective-return", headers=auth_headers(security))

        assert response.status_code == 200

    def test_toggle_and_frequently_used(self, client, key, faculty, auth_headers):
        headers = auth_headers(faculty)

        toggled = client.post(f"/api/keys/{key.id}/toggle-frequent", headers=headers)
        listed = client.get("/api/keys/frequently-used", headers=headers).json()

        assert toggled.json()["data"]["frequentlyUsed"] is True
        assert [k["id"] for k in listed["data"]] == [key.id]

    def test_my_frequently_used(self, client, make_key, faculty, auth_headers):
        headers = auth_headers(faculty)
        favourite = make_key("FAV-1")
        for _ in range(2):
            client.post(f"/api/keys/{favourite.id}/take", headers=headers)
            client.post(f"/api/keys/{favourite.id}/return", headers=headers)

        response = client.get("/api/keys/my-frequently-used", headers=headers).json()

        assert [k["keyNumber"] for k in response["data"]] == ["FAV-1"]

    def test_all_taken_requires_role(self, client, key, faculty, security, auth_headers):
        client.post(f"/api/keys/{key.id}/take", headers=auth_headers(faculty))

        response = client.get("/api/keys/all-taken", headers=auth_headers(security)).json()

        assert [k["id"] for k in response["data"]] == [key.id]


class TestProvisioningRoutes:
    def test_create_update_delete(self, client, admin, auth_headers):
        headers = auth_headers(admin)

        created = client.post("/api/keys", headers=headers, json={
            "keyNumber": "NEW-1", "keyName": "Store Room", "location": "Basement", "category": "storage",
        })
        assert created.status_code == 201
        key_id = created.json()["data"]["id"]

        updated = client.put(f"/api/keys/{key_id}", headers=headers, json={"location": "Ground Floor"})
        assert updated.json()["data"]["location"] == "Ground Floor"

        deleted = client.delete(f"/api/keys/{key_id}", headers=headers)
        assert deleted.status_code == 200
        assert client.get(f"/api/keys/{key_id}", headers=headers).status_code == 404

    def test_cannot_delete_taken_key(self, client, key, faculty, admin, auth_headers):
        client.post(f"/api/keys/{key.id}/take", headers=auth_headers(faculty))

        response = client.delete(f"/api/keys/{key.id}", headers=auth_headers(admin))

        assert response.status_code == 409
        assert response.json()["code"] == "KEY_IN_USE"

    def test_invalid_body(self, client, admin, auth_headers):
        response = client.post("/api/keys", headers=auth_headers(admin), json={"keyNumber": ""})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"


class TestQRRoutes:
    def test_scan_request_and_return(self, client, key, faculty, security, auth_headers):
        headers = auth_headers(security)
        request_qr = qr_tokens.generate_request_token(key.id, faculty.user_id).to_qr_payload()

        assigned = client.post("/api/keys/qr-scan/request", json={"qrData": request_qr}, headers=headers)
        assert assigned.status_code == 200
        assert assigned.json()["data"]["holder"]["userId"] == faculty.user_id
        assert assigned.json()["scannedBy"] == security.user_id

        replay = client.post("/api/keys/qr-scan/request", json={"qrData": request_qr}, headers=headers)
        assert replay.status_code == 409
        assert replay.json()["code"] == "KEY_NOT_AVAILABLE"

        return_qr = qr_tokens.generate_return_token(key.id, faculty.user_id)
        returned = client.post("/api/keys/qr-scan/return",
                               json={"qrData": return_qr.model_dump(mode="json", by_alias=True)},
                               headers=headers)
        assert returned.status_code == 200
        assert returned.json()["data"]["status"] == "available"

    def test_malformed_qr(self, client, security, auth_headers):
        response = client.post("/api/keys/qr-scan/return", json={"qrData": "{broken"},
                               headers=auth_headers(security))

        assert response.status_code == 400
        assert response.json()["code"] == "MALFORMED_TOKEN"

    def test_holder_mismatch(self, client, key, faculty, other_faculty, security, auth_headers):
        client.post(f"/api/keys/{key.id}/take", headers=auth_headers(faculty))
        wrong = qr_tokens.generate_return_token(key.id, other_faculty.user_id).to_qr_payload()

        response = client.post("/api/keys/qr-scan/return", json={"qrData": wrong},
                               headers=auth_headers(security))

        assert response.status_code == 409
        assert response.json()["code"] == "HOLDER_MISMATCH"

    def test_batch_return(self, client, make_key, faculty, security, auth_headers):
        taken = make_key("A-1")
        idle = make_key("B-1")
        client.post(f"/api/keys/{taken.id}/take", headers=auth_headers(faculty))
        batch = qr_tokens.generate_batch_return_token([taken.id, idle.id], faculty.user_id)

        response = client.post("/api/qr/batch-return", json={"qrData": batch.to_qr_payload()},
                               headers=auth_headers(security))

        body = response.json()
        assert response.status_code == 200
        assert body["message"] == "1 of 2 key(s) returned successfully"
        assert [(r["keyId"], r["success"], r["code"]) for r in body["results"]] == [
            (taken.id, True, None), (idle.id, False, "KEY_NOT_TAKEN"),
        ]

    def test_validate(self, client, faculty, auth_headers):
        good = qr_tokens.generate_request_token("k1", faculty.user_id).to_qr_payload()

        valid = client.post("/api/qr/validate", json={"qrData": good}, headers=auth_headers(faculty)).json()
        invalid = client.post("/api/qr/validate", json={"qrData": {"kind": "return"}},
                              headers=auth_headers(faculty)).json()

        assert valid == {"valid": True, "kind": "request", "errors": []}
        assert invalid["valid"] is False
        assert invalid["errors"]


class TestDashboardAndHealth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.json() == {"status": "ok", "dataAvailable": True, "message": None}

    def test_summary_counts(self, client, app, make_key, faculty, auth_headers):
        first = make_key()
        make_key()
        client.post(f"/api/keys/{first.id}/toggle-frequent", headers=auth_headers(faculty))
        client.post(f"/api/keys/{first.id}/take", headers=auth_headers(faculty))
        app.state.fanout.subscribe(KEYS_ROOM, lambda message: None)

        summary = client.get("/api/dashboard/summary", headers=auth_headers(faculty)).json()["summary"]

        assert summary == {
            "totalKeys": 2,
            "availableKeys": 1,
            "unavailableKeys": 1,
            "frequentlyUsedKeys": 1,
            "connectedClients": 1,
        }
