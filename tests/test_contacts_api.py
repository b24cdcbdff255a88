"""API tests for contact matching."""

import pytest

from tests.conftest import auth_headers, make_user
from wakecheck.core.phone import phone_fingerprint


class TestContactMatchEndpoint:
    @pytest.mark.asyncio
    async def test_returns_matches_excluding_caller(self, client, db_session):
        caller = await make_user(db_session, "Caller", phone="4155550100")
        friend = await make_user(db_session, "Friend", phone="4155550101")

        response = await client.post(
            "/api/contacts/match",
            json={
                "hashes": [
                    phone_fingerprint("4155550100"),
                    phone_fingerprint("4155550101").upper(),
                ]
            },
            headers=auth_headers(caller),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["matches"][0]["user_id"] == str(friend.id)
        assert data["matches"][0]["display_name"] == "Friend"

    @pytest.mark.asyncio
    async def test_rejects_malformed_hashes(self, client, db_session):
        caller = await make_user(db_session)

        response = await client.post(
            "/api/contacts/match",
            json={"hashes": ["+14155550100"]},
            headers=auth_headers(caller),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rejects_too_many_hashes(self, client, db_session):
        caller = await make_user(db_session)

        response = await client.post(
            "/api/contacts/match",
            json={"hashes": [f"{i:064x}" for i in range(1001)]},
            headers=auth_headers(caller),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client):
        response = await client.post(
            "/api/contacts/match", json={"hashes": [f"{1:064x}"]}
        )
        assert response.status_code == 401
