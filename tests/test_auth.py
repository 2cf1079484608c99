"""
Test token issuing, verification and the role gate.
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

import auth
from auth import TokenService, authenticate, bearer_token, require_role
from conftest import ADMIN, INSTRUCTOR, STUDENT, TEST_SECRET
from errors import ForbiddenException, InvalidToken, UnauthorizedException
from models import Identity, Role


class TestTokenService:
    def test_issue_and_verify_round_trip(self, tokens):
        token = tokens.issue({"email": STUDENT})

        assert tokens.verify(token) == Identity(email=STUDENT)

    def test_token_expires_after_two_hours(self, tokens):
        token = tokens.issue({"email": STUDENT})
        payload = jwt.decode(token, TEST_SECRET, algorithms=["HS256"])

        assert payload["exp"] - payload["iat"] == 2 * 60 * 60

    def test_expired_token_is_rejected(self):
        expired = TokenService(TEST_SECRET, expires_in=timedelta(seconds=-5))
        token = expired.issue({"email": STUDENT})

        with pytest.raises(InvalidToken) as excinfo:
            TokenService(TEST_SECRET).verify(token)
        assert excinfo.value.code == "token_expired"

    def test_structurally_valid_but_stale_token_is_rejected(self):
        old = datetime.now(timezone.utc) - timedelta(hours=3)
        token = jwt.encode(
            {"email": STUDENT, "iat": old, "exp": old + timedelta(hours=2)},
            TEST_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(InvalidToken):
            TokenService(TEST_SECRET).verify(token)

    def test_wrong_secret_is_rejected(self, tokens):
        token = TokenService("another-secret").issue({"email": STUDENT})

        with pytest.raises(InvalidToken) as excinfo:
            tokens.verify(token)
        assert excinfo.value.code == "token_invalid"

    def test_token_without_email_is_rejected(self, tokens):
        token = tokens.issue({"name": "nobody"})

        with pytest.raises(InvalidToken):
            tokens.verify(token)

    def test_token_without_expiry_is_rejected(self, tokens):
        token = jwt.encode({"email": STUDENT}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(InvalidToken) as excinfo:
            tokens.verify(token)
        assert excinfo.value.code == "token_invalid"


class TestBearerCredentials:
    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc"])
    def test_missing_or_malformed_header(self, header):
        with pytest.raises(UnauthorizedException):
            bearer_token(header)

    def test_garbled_token(self, tokens):
        with pytest.raises(UnauthorizedException):
            authenticate("Bearer not.a.token", tokens)

    def test_valid_header(self, tokens):
        header = f"Bearer {tokens.issue({'email': ADMIN})}"

        assert authenticate(header, tokens).email == ADMIN


class TestRequireRole:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,required",
        [
            (STUDENT, Role.ADMIN),
            (STUDENT, Role.INSTRUCTOR),
            (INSTRUCTOR, Role.ADMIN),
            (INSTRUCTOR, Role.STUDENT),
            (ADMIN, Role.INSTRUCTOR),
            ("stranger@example.com", Role.STUDENT),
        ],
    )
    async def test_role_mismatch_is_forbidden(self, store, people, tokens, email, required):
        # Extra claims in the token never grant a role
        token = tokens.issue({"email": email, "role": required.value, "admin": True})
        identity = tokens.verify(token)

        with pytest.raises(ForbiddenException):
            await require_role(identity, required, store=store)

    @pytest.mark.asyncio
    async def test_matching_role_passes(self, store, people):
        role = await require_role(Identity(email=INSTRUCTOR), Role.INSTRUCTOR, Role.ADMIN, store=store)

        assert role == Role.INSTRUCTOR

    @pytest.mark.asyncio
    async def test_promotion_is_visible_without_new_token(self, store, people, tokens):
        token = tokens.issue({"email": STUDENT})
        identity = tokens.verify(token)
        with pytest.raises(ForbiddenException):
            await require_role(identity, Role.ADMIN, store=store)

        await store.collection("users").update_one({"email": STUDENT}, {"$set": {"role": "admin"}})

        assert await require_role(tokens.verify(token), Role.ADMIN, store=store) == Role.ADMIN

    @pytest.mark.asyncio
    async def test_revoked_role_is_denied_immediately(self, store, people):
        await store.collection("users").update_one({"email": ADMIN}, {"$set": {"role": "student"}})

        with pytest.raises(ForbiddenException):
            await require_role(Identity(email=ADMIN), Role.ADMIN, store=store)


class TestGateOverHttp:
    def test_token_endpoint(self, client, tokens):
        response = client.post("/jwt", json={"email": STUDENT})

        assert response.status_code == 200
        assert tokens.verify(response.json()["token"]).email == STUDENT

    def test_missing_credentials_short_circuit_role_lookup(self, client, people, monkeypatch):
        lookups = []

        async def recording_role_of(store, email):
            lookups.append(email)
            return Role.ADMIN

        monkeypatch.setattr(auth, "role_of", recording_role_of)

        response = client.get("/users")

        assert response.status_code == 401
        assert response.json() == {
            "error": True,
            "message": "unauthorized access",
            "code": "credentials_missing",
        }
        assert lookups == []

    def test_expired_token_gets_401(self, client, people):
        token = TokenService(TEST_SECRET, expires_in=timedelta(seconds=-1)).issue({"email": ADMIN})

        response = client.get("/users", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["code"] == "token_expired"

    def test_wrong_role_gets_403(self, client, people, auth_headers):
        response = client.get("/users", headers=auth_headers(STUDENT))

        assert response.status_code == 403
        assert response.json()["error"] is True
        assert response.json()["message"] == "forbidden message"

    def test_admin_passes(self, client, people, auth_headers):
        response = client.get("/users", headers=auth_headers(ADMIN))

        assert response.status_code == 200
        assert {u["email"] for u in response.json()} == {STUDENT, INSTRUCTOR, ADMIN}

    def test_own_email_matches_regardless_of_case(self, client, people, add_class, auth_headers):
        class_id = add_class()
        headers = auth_headers(STUDENT)
        client.post("/booked-classes", json={"selectClassId": class_id, "email": STUDENT}, headers=headers)

        listed = client.get("/booked-classes", params={"email": STUDENT.upper()}, headers=headers)
        stats = client.get("/student-stat", params={"email": STUDENT.upper()}, headers=headers)

        assert listed.status_code == 200
        assert [b["selectClassId"] for b in listed.json()] == [class_id]
        assert stats.status_code == 200
        assert client.get(
            "/booked-classes", params={"email": "other@example.com"}, headers=headers
        ).status_code == 403
