"""
Integration tests for identity verification and token revocation.
"""

from datetime import timedelta

import pytest

from parcel_delivery.app.core.jwt import create_access_token
from conftest import make_token


@pytest.mark.asyncio
async def test_me_returns_verified_identity(client, rider_headers):
    response = await client.get("/auth/me", headers=rider_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "rider@test.com"
    assert data["role"] == "rider"


@pytest.mark.asyncio
async def test_missing_token_rejected(client):
    response = await client.get("/auth/me")

    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token_rejected(client):
    response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_expired_token_rejected(client):
    token = create_access_token(
        data={"sub": "uid-1", "email": "sender@test.com", "role": "user"},
        expires_delta=timedelta(minutes=-5)
    )

    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_without_email_rejected(client):
    token = create_access_token(data={"sub": "uid-1", "role": "user"})

    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"
    assert "payload" in response.json()["message"].lower()


@pytest.mark.asyncio
async def test_logout_revokes_token(client, redis_mock):
    headers = {"Authorization": f"Bearer {make_token('sender@test.com')}"}

    response = await client.post("/auth/logout", headers=headers)

    assert response.status_code == 200
    assert response.json()["revoked"] is True
    assert len(redis_mock.store) == 1

    after = await client.get("/auth/me", headers=headers)
    assert after.status_code == 401
    assert after.json()["error_code"] == "ERR_AUTH_002"
    assert after.json()["message"] == "Token has been revoked"


@pytest.mark.asyncio
async def test_unknown_role_cannot_use_role_guarded_routes(client, parcel_factory):
    parcel = await parcel_factory()
    headers = {"Authorization": f"Bearer {make_token('x@test.com', role='superhero')}"}

    response = await client.post(f"/parcels/{parcel.id}/tracking", json={"status": "lost"}, headers=headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_health_is_public(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] == "ok"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_protected_routes_report_auth_error_code(client):
    response = await client.get("/payments", headers={"Authorization": "Bearer garbage"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_health_reports_unreachable_redis(client, redis_mock):
    redis_mock._closed = True

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["redis"] == "unavailable"
