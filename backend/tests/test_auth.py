"""
Authentication and user lookup tests.
"""

from jose import jwt

from conftest import register
from davinci.core.config import settings
from davinci.core.security import create_access_token, hash_password, verify_password


def test_password_hashing():
    hashed = hash_password("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)


class TestRegisterAndLogin:

    async def test_register_then_login_by_username_or_email(self, client):
        alice = await register(client, "alice")

        for login_name in (alice.username, alice.email.upper()):
            resp = await client.post("/api/v1/auth/login", json={
                "username": login_name,
                "password": "password123",
            })
            assert resp.status_code == 200, resp.text
            assert resp.json()["token_type"] == "bearer"
            assert resp.json()["expires_in"] == settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60

    async def test_duplicate_registration(self, client):
        alice = await register(client, "alice")
        resp = await client.post("/api/v1/auth/register", json={
            "username": alice.username,
            "email": "someone-else@example.com",
            "password": "password123",
        })
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "USER_EXISTS"

    async def test_weak_password(self, client):
        resp = await client.post("/api/v1/auth/register", json={
            "username": "weakling",
            "email": "weak@example.com",
            "password": "no-digits-here",
        })
        assert resp.status_code == 422

    async def test_wrong_password(self, client):
        alice = await register(client, "alice")
        resp = await client.post("/api/v1/auth/login", json={
            "username": alice.username,
            "password": "wrong-password1",
        })
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "INVALID_CREDENTIALS"


class TestTokenSecurity:

    async def test_me(self, client):
        alice = await register(client, "alice")
        resp = await client.get("/api/v1/auth/me", headers=alice.headers)
        assert resp.json()["username"] == alice.username
        assert resp.json()["email"] == alice.email

    async def test_tampered_token(self, client):
        alice = await register(client, "alice")
        token = alice.headers["Authorization"].removeprefix("Bearer ")
        resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}x"})
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "INVALID_TOKEN"

    async def test_non_access_token(self, client):
        alice = await register(client, "alice")
        forged = jwt.encode(
            {"sub": alice.id, "type": "invite"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
        )
        resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {forged}"})
        assert resp.status_code == 401

    async def test_unknown_user(self, client):
        token = create_access_token("00000000-0000-0000-0000-000000000000")
        resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "USER_NOT_FOUND"


class TestUserSearch:

    async def test_search_excludes_caller(self, client):
        alice = await register(client, "searcher")
        bob = await register(client, "searchee")

        resp = await client.get("/api/v1/users/search", params={"keyword": "search"}, headers=alice.headers)
        assert resp.status_code == 200
        ids = {u["id"] for u in resp.json()}
        assert bob.id in ids
        assert alice.id not in ids

    async def test_keyword_required(self, client):
        alice = await register(client, "alice")
        resp = await client.get("/api/v1/users/search", params={"keyword": ""}, headers=alice.headers)
        assert resp.status_code == 422

    async def test_underscore_in_keyword_is_literal(self, client):
        caller = await register(client, "caller")
        exact = await register(client, "wild")
        other = await register(client, "wildx")

        resp = await client.get("/api/v1/users/search", params={"keyword": "wild_"}, headers=caller.headers)
        assert resp.status_code == 200
        ids = {u["id"] for u in resp.json()}
        assert exact.id in ids
        assert other.id not in ids

    async def test_percent_keyword_matches_nothing(self, client):
        caller = await register(client, "caller")
        await register(client, "someone")

        resp = await client.get("/api/v1/users/search", params={"keyword": "%"}, headers=caller.headers)
        assert resp.status_code == 200
        assert resp.json() == []
