import asyncio

import bcrypt


def test_root_and_health(client):
    assert "running" in client.get("/").json()["message"]
    health = client.get("/test").json()
    assert health["backend"] == "✅ Running"
    assert health["connection_status"] == "Connected"


def test_register_creates_customer_and_welcomes(client, db, mailer, notifier, admin):
    resp = client.post("/api/users", json={"name": "Ravi", "email": "Ravi@Example.com", "password": "secret123"})
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["email"] == "ravi@example.com"
    assert "password_hash" not in data
    assert data["customer_id"]

    stored = asyncio.run(db["user"].find_one({"email": "ravi@example.com"}))
    assert bcrypt.checkpw(b"secret123", stored["password_hash"].encode())
    customer = asyncio.run(db["customer"].find_one({"user_id": data["id"]}))
    assert customer["address_count"] == 0

    assert mailer.outbox[0]["to"] == ["ravi@example.com"]
    assert "New User Registered" in notifier.titles()


def test_duplicate_email_rejected(client, user):
    resp = client.post("/api/users", json={"name": "Other", "email": "asha@example.com", "password": "secret123"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "An account with this email already exists"}


def test_local_account_needs_password(client):
    resp = client.post("/api/users", json={"name": "No Pass", "email": "np@example.com"})
    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_google_account_is_verified(client):
    resp = client.post("/api/users", json={"name": "G User", "email": "g@example.com", "provider": "google", "google_id": "g-1"})
    assert resp.json()["data"]["is_verified"] is True


def test_get_and_verify_user(client, user):
    assert client.get(f"/api/users/{user['id']}").json()["data"]["is_verified"] is False
    assert client.post(f"/api/users/{user['id']}/verify").json()["success"] is True
    assert client.get(f"/api/users/{user['id']}").json()["data"]["is_verified"] is True
    assert client.get("/api/users/not-an-id").status_code == 400
    assert client.get("/api/users/64b7f0c2a1b2c3d4e5f60718").status_code == 404


def test_fcm_token_lifecycle(client, user):
    body = {"user_id": user["id"], "fcm_token": "device-1", "user_type": "user"}
    assert client.post("/api/auth/fcm-token", json=body).status_code == 200
    client.post("/api/auth/fcm-token", json=body)
    client.post("/api/auth/fcm-token", json={**body, "fcm_token": "device-2"})
    assert client.get(f"/api/users/{user['id']}").json()["data"]["fcm_tokens"] == ["device-1", "device-2"]

    client.request("DELETE", "/api/auth/fcm-token", json={"user_id": user["id"], "user_type": "user", "fcm_token": "device-1"})
    assert client.get(f"/api/users/{user['id']}").json()["data"]["fcm_tokens"] == ["device-2"]

    client.request("DELETE", "/api/auth/fcm-token", json={"user_id": user["id"], "user_type": "user"})
    assert client.get(f"/api/users/{user['id']}").json()["data"]["fcm_tokens"] == []


def test_admins(client, admin):
    admins = client.get("/api/admins").json()["data"]
    assert [a["email"] for a in admins] == ["admin@example.com"]
    assert admins[0]["fcm_tokens"] == ["admin-device"]
    assert client.post("/api/admins", json={"name": "Dup", "email": "ADMIN@example.com"}).status_code == 400


def test_login(client, user):
    creds = {"email": "Asha@Example.com", "password": "secret123"}
    resp = client.post("/api/auth/login", json=creds)
    assert resp.status_code == 401
    assert resp.json()["message"] == "Please verify your email before signing in."

    client.post(f"/api/users/{user['id']}/verify")
    resp = client.post("/api/auth/login", json=creds)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == user["id"]
    assert data["customer_id"] == user["customer_id"]
    assert data["last_login"]
    assert "password_hash" not in data

    wrong = client.post("/api/auth/login", json={**creds, "password": "not-it"})
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid email or password"
    assert client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "x"}).status_code == 401


def test_google_account_cannot_use_password_login(client):
    client.post("/api/users", json={"name": "G User", "email": "g@example.com", "provider": "google", "google_id": "g-1"})
    resp = client.post("/api/auth/login", json={"email": "g@example.com", "password": "anything"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Please sign in with Google"
