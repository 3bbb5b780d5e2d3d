"""Repository for saved Salesforce org connections."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import delete, select

from devhub.core.constants import SalesforceAuthType
from devhub.core.exceptions import BusinessLogicError, NotFoundError
from devhub.core.logging import get_logger
from devhub.core.security import canonical_credentials, hash_secret, verify_secret
from devhub.db.models import SalesforceConnectionDB, utcnow
from devhub.db.session import get_async_session

logger = get_logger(__name__)

# camelCase request keys -> column names
_FIELD_MAP = {
    "name": "name",
    "instanceUrl": "instance_url",
    "orgId": "org_id",
    "orgName": "org_name",
    "userName": "user_name",
    "userEmail": "user_email",
    "version": "version",
    "isActive": "is_active",
    "orgInfo": "org_info",
    "userInfo": "user_info",
}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_connection(conn: SalesforceConnectionDB) -> dict[str, Any]:
    """Public view of a connection. The credential hash never leaves the server."""
    return {
        "id": conn.id,
        "userId": conn.user_id,
        "connectionId": conn.connection_id,
        "name": conn.name,
        "authType": conn.auth_type.value,
        "instanceUrl": conn.instance_url,
        "orgId": conn.org_id,
        "orgName": conn.org_name,
        "userName": conn.user_name,
        "userEmail": conn.user_email,
        "version": conn.version,
        "isActive": conn.is_active,
        "lastUsed": _iso(conn.last_used),
        "createdAt": _iso(conn.created_at),
        "updatedAt": _iso(conn.updated_at),
        "orgInfo": conn.org_info,
        "userInfo": conn.user_info,
    }


def _not_found() -> NotFoundError:
    return NotFoundError("Connection", message="Connection not found")


class SalesforceConnectionRepository:
    """Per-user registry of Salesforce orgs.

    Raw credentials are never persisted; only a keyed hash of them is, so a
    reconnect can be checked against what the user saved earlier.
    """

    async def _load(self, session, user_id: str, connection_id: str) -> SalesforceConnectionDB:
        result = await session.execute(
            select(SalesforceConnectionDB).where(
                SalesforceConnectionDB.user_id == user_id,
                SalesforceConnectionDB.connection_id == connection_id,
            )
        )
        conn = result.scalar_one_or_none()
        if conn is None:
            raise _not_found()
        return conn

    async def save(self, user_id: str, connection: dict[str, Any]) -> dict[str, Any]:
        """Insert or update a connection keyed by (user, connectionId).

        Args:
            user_id: Owner
            connection: camelCase connection payload; ``authData`` is hashed
                and discarded

        Returns:
            The stored connection
        """
        connection_id = connection["connectionId"]

        async with get_async_session() as session:
            result = await session.execute(
                select(SalesforceConnectionDB).where(
                    SalesforceConnectionDB.user_id == user_id,
                    SalesforceConnectionDB.connection_id == connection_id,
                )
            )
            conn = result.scalar_one_or_none()
            created = conn is None

            if conn is None:
                conn = SalesforceConnectionDB(
                    user_id=user_id,
                    connection_id=connection_id,
                    name=connection.get("name") or connection_id,
                    auth_type=SalesforceAuthType(connection["authType"]),
                    instance_url=connection.get("instanceUrl", ""),
                )
                session.add(conn)
            elif connection.get("authType"):
                conn.auth_type = SalesforceAuthType(connection["authType"])

            for key, column in _FIELD_MAP.items():
                if connection.get(key) is not None:
                    setattr(conn, column, connection[key])

            if connection.get("authData"):
                conn.auth_data_hash = hash_secret(canonical_credentials(connection["authData"]))

            conn.last_used = utcnow()
            conn.updated_at = utcnow()
            await session.flush()

            logger.info(
                "Salesforce connection saved",
                user_id=user_id,
                connection_id=connection_id,
                created=created,
            )
            return serialize_connection(conn)

    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        async with get_async_session() as session:
            result = await session.execute(
                select(SalesforceConnectionDB)
                .where(SalesforceConnectionDB.user_id == user_id)
                .order_by(
                    SalesforceConnectionDB.last_used.desc().nulls_last(),
                    SalesforceConnectionDB.created_at.desc(),
                )
            )
            return [serialize_connection(c) for c in result.scalars().all()]

    async def get(self, user_id: str, connection_id: str) -> dict[str, Any]:
        async with get_async_session() as session:
            return serialize_connection(await self._load(session, user_id, connection_id))

    async def update_last_used(self, user_id: str, connection_id: str) -> None:
        async with get_async_session() as session:
            conn = await self._load(session, user_id, connection_id)
            conn.last_used = utcnow()
            conn.updated_at = utcnow()

    async def update_status(
        self,
        user_id: str,
        connection_id: str,
        is_active: bool,
        org_info: Optional[dict[str, Any]] = None,
        user_info: Optional[dict[str, Any]] = None,
    ) -> None:
        async with get_async_session() as session:
            conn = await self._load(session, user_id, connection_id)
            conn.is_active = is_active
            if org_info:
                conn.org_info = org_info
            if user_info:
                conn.user_info = user_info
            conn.updated_at = utcnow()

    async def update_name(self, user_id: str, connection_id: str, name: str) -> None:
        async with get_async_session() as session:
            conn = await self._load(session, user_id, connection_id)
            conn.name = name
            conn.updated_at = utcnow()

    async def verify_credentials(self, user_id: str, connection_id: str, auth_data: Any) -> bool:
        """Check supplied credentials against the stored hash."""
        async with get_async_session() as session:
            conn = await self._load(session, user_id, connection_id)
            if not conn.auth_data_hash:
                raise BusinessLogicError(
                    "Connection has no stored credentials to verify against",
                    details={"connection_id": connection_id},
                )
            return verify_secret(canonical_credentials(auth_data), conn.auth_data_hash)

    async def delete(self, user_id: str, connection_id: str) -> None:
        async with get_async_session() as session:
            result = await session.execute(
                delete(SalesforceConnectionDB).where(
                    SalesforceConnectionDB.user_id == user_id,
                    SalesforceConnectionDB.connection_id == connection_id,
                )
            )
            if result.rowcount == 0:
                raise _not_found()

        logger.info("Salesforce connection deleted", user_id=user_id, connection_id=connection_id)
