"""
Unit tests for saved Salesforce connections.
"""

import pytest
from httpx import AsyncClient

from devhub.core.exceptions import BusinessLogicError, NotFoundError
from devhub.repositories.salesforce_repo import SalesforceConnectionRepository


def _connection(**overrides) -> dict:
    connection = {
        "connectionId": "org-dev",
        "name": "Dev sandbox",
        "authType": "username_password",
        "instanceUrl": "https://dev.my.salesforce.com",
        "orgId": "00D000000000001",
        "authData": {"username": "ada@dev.org", "password": "hunter2"},
    }
    connection.update(overrides)
    return connection


class TestSalesforceConnectionRepository:
    """Tests for the connection registry."""

    @pytest.mark.asyncio
    async def test_save_never_exposes_credentials(self, db: None) -> None:
        repository = SalesforceConnectionRepository()
        saved = await repository.save("user-1", _connection())

        assert saved["connectionId"] == "org-dev"
        assert saved["authType"] == "username_password"
        assert "authData" not in saved
        assert "auth_data_hash" not in saved
        assert saved["lastUsed"] is not None

    @pytest.mark.asyncio
    async def test_save_upserts_by_connection_id(self, db: None) -> None:
        repository = SalesforceConnectionRepository()
        await repository.save("user-1", _connection())
        await repository.save("user-1", _connection(name="Renamed", authData=None))

        connections = await repository.list_for_user("user-1")
        assert len(connections) == 1
        assert connections[0]["name"] == "Renamed"
        assert connections[0]["orgId"] == "00D000000000001"

    @pytest.mark.asyncio
    async def test_connections_are_per_user(self, db: None) -> None:
        repository = SalesforceConnectionRepository()
        await repository.save("user-1", _connection())

        assert await repository.list_for_user("user-2") == []
        with pytest.raises(NotFoundError):
            await repository.get("user-2", "org-dev")
        with pytest.raises(NotFoundError):
            await repository.delete("user-2", "org-dev")

    @pytest.mark.asyncio
    async def test_verify_credentials(self, db: None) -> None:
        repository = SalesforceConnectionRepository()
        auth = {"username": "ada@dev.org", "password": "hunter2"}
        await repository.save("user-1", _connection())

        assert await repository.verify_credentials("user-1", "org-dev", auth) is True
        assert await repository.verify_credentials("user-1", "org-dev", "wrong") is False

        reordered = {"password": "hunter2", "username": "ada@dev.org"}
        assert await repository.verify_credentials("user-1", "org-dev", reordered) is True
        assert await repository.verify_credentials("user-1", "org-dev", {**reordered, "password": "x"}) is False

        await repository.save("user-1", _connection(connectionId="org-oauth", authData=None))
        with pytest.raises(BusinessLogicError):
            await repository.verify_credentials("user-1", "org-oauth", auth)


@pytest.mark.asyncio
async def test_connection_endpoints(async_client: AsyncClient, auth_headers: dict[str, str]) -> None:
    response = await async_client.post(
        "/api/v1/salesforce/connections", json=_connection(), headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["connection"]["name"] == "Dev sandbox"

    response = await async_client.post(
        "/api/v1/salesforce/connections",
        json=_connection(authType="carrier_pigeon"),
        headers=auth_headers,
    )
    assert response.status_code == 422

    response = await async_client.patch(
        "/api/v1/salesforce/connections/org-dev",
        json={"name": "Dev", "isActive": False, "orgInfo": {"edition": "Developer"}},
        headers=auth_headers,
    )
    connection = response.json()["connection"]
    assert connection["name"] == "Dev"
    assert connection["isActive"] is False
    assert connection["orgInfo"] == {"edition": "Developer"}

    response = await async_client.patch(
        "/api/v1/salesforce/connections/org-dev", json={}, headers=auth_headers
    )
    assert response.status_code == 400

    response = await async_client.post(
        "/api/v1/salesforce/connections/org-dev/touch", headers=auth_headers
    )
    assert response.json() == {"success": True}

    response = await async_client.post(
        "/api/v1/salesforce/connections/org-dev/verify",
        json={"authData": {"password": "hunter2", "username": "ada@dev.org"}},
        headers=auth_headers,
    )
    assert response.json() == {"success": True, "valid": True}

    response = await async_client.get("/api/v1/salesforce/connections", headers=auth_headers)
    assert [c["connectionId"] for c in response.json()["connections"]] == ["org-dev"]

    response = await async_client.delete("/api/v1/salesforce/connections/org-dev", headers=auth_headers)
    assert response.status_code == 200

    response = await async_client.get("/api/v1/salesforce/connections/org-dev", headers=auth_headers)
    assert response.status_code == 404
