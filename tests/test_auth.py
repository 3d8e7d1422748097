"""Tests for authentication and the service endpoints."""

from datetime import datetime, timedelta, timezone

import jwt

import auth


class TestSignupLogin:
    def test_signup(self, client):
        body = {"name": "New Reader", "email": "reader@example.com", "password": "hunter22"}
        response = client.post("/api/auth/signup", json=body)
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["role"] == "BUYER"
        assert auth.decode_token(data["token"])["email"] == "reader@example.com"

    def test_signup_as_seller(self, client, db):
        body = {"name": "Shop", "email": "shop@example.com", "password": "hunter22", "role": "SELLER",
                "store_name": "Corner Books"}
        assert client.post("/api/auth/signup", json=body).json()["user"]["store_name"] == "Corner Books"
        stored = db["user"].find_one({"email": "shop@example.com"})
        assert stored["password_hash"] == auth.hash_password("hunter22")

    def test_cannot_self_register_admin(self, client):
        body = {"name": "Sneaky", "email": "sneaky@example.com", "password": "hunter22", "role": "ADMIN"}
        assert client.post("/api/auth/signup", json=body).status_code == 400

    def test_duplicate_email(self, client, buyer):
        body = {"name": "Again", "email": buyer["email"], "password": "hunter22"}
        response = client.post("/api/auth/signup", json=body)
        assert response.status_code == 400
        assert response.json()["message"] == "Email already registered"

    def test_login(self, client, buyer):
        response = client.post("/api/auth/login", json={"email": buyer["email"], "password": "secret123"})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == buyer["id"]
        assert "password_hash" not in response.json()["user"]

    def test_wrong_password(self, client, buyer):
        response = client.post("/api/auth/login", json={"email": buyer["email"], "password": "nope"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_deactivated_user(self, client, db, buyer):
        db["user"].update_one({"email": buyer["email"]}, {"$set": {"is_active": False}})
        response = client.post("/api/auth/login", json={"email": buyer["email"], "password": "secret123"})
        assert response.status_code == 403
        assert client.get("/api/auth/me", headers=buyer["headers"]).status_code == 403


class TestTokens:
    def test_me(self, client, seller):
        response = client.get("/api/auth/me", headers=seller["headers"])
        assert response.status_code == 200
        assert response.json()["user"]["role"] == "SELLER"

    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["message"] == "No token, authorization denied"

    def test_garbage_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_expired_token(self, client, buyer):
        token = jwt.encode(
            {"id": buyer["id"], "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            auth.JWT_SECRET,
            algorithm=auth.JWT_ALGO,
        )
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    def test_token_for_deleted_user(self, client, db, buyer):
        db["user"].delete_many({})
        response = client.get("/api/auth/me", headers=buyer["headers"])
        assert response.status_code == 401
        assert response.json()["message"] == "User not found"


class TestService:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Bookstore API running"}

    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "OK"
        assert data["database"] == "Connected"

    def test_unknown_route(self, client):
        response = client.get("/api/nowhere")
        assert response.status_code == 404
        assert response.json() == {"message": "Not Found"}

    def test_seed(self, client, db):
        first = client.post("/api/seed").json()
        assert first["seeded"] is True
        assert first["books"] == 5
        assert db["user"].count_documents({"role": "ADMIN"}) == 1
        login = client.post("/api/auth/login", json={"email": "seller@bookstore.com", "password": "seller123"})
        assert login.status_code == 200

        second = client.post("/api/seed").json()
        assert second["seeded"] is False
        assert db["book"].count_documents({}) == 5
