from dominotes.auth import compare_pin, hash_pin


def test_hash_round_trip_and_salting():
    hashed = hash_pin("1234", iterations=1000)
    assert hashed.startswith("pbkdf2_sha256$1000$")
    assert compare_pin("1234", hashed)
    assert not compare_pin("4321", hashed)
    assert hash_pin("1234", iterations=1000) != hashed
    assert not compare_pin("1234", "garbage")


def test_routes_require_cookie(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    r = client.get("/api/notes")
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}
    assert client.get("/api/folders").status_code == 401


def test_setup_login_logout(client):
    r = client.post("/api/auth/pin", json={"pin": "1234"}, headers={"x-action": "setup"})
    assert r.status_code == 200
    assert r.json() == {"message": "PIN successfully set"}
    assert "httponly" in r.headers["set-cookie"].lower()
    assert client.get("/api/notes").status_code == 200

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/notes").status_code == 401

    r = client.post("/api/auth/pin", json={"pin": "9999"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid PIN"}
    assert client.get("/api/notes").status_code == 401

    r = client.post("/api/auth/pin", json={"pin": "1234"})
    assert r.json() == {"message": "Login successful"}
    assert client.get("/api/notes").status_code == 200


def test_login_before_setup_fails(client):
    assert client.post("/api/auth/pin", json={"pin": "1234"}).status_code == 401


def test_pin_format_is_validated(client):
    for bad in ("123", "12345", "abcd", ""):
        r = client.post("/api/auth/pin", json={"pin": bad}, headers={"x-action": "setup"})
        assert r.status_code == 400
        assert r.json()["error"] == "Invalid request data"
        assert r.json()["issues"]


def test_setup_replaces_existing_pin(client):
    client.post("/api/auth/pin", json={"pin": "1234"}, headers={"x-action": "setup"})
    client.post("/api/auth/pin", json={"pin": "5678"}, headers={"x-action": "setup"})
    assert client.post("/api/auth/pin", json={"pin": "1234"}).status_code == 401
    assert client.post("/api/auth/pin", json={"pin": "5678"}).status_code == 200
