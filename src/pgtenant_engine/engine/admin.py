"""Admin engine — autocommit DDL against the PostgreSQL server.

CREATE/DROP DATABASE cannot run inside a transaction block, so every
primitive here runs on an AUTOCOMMIT connection and is committed the moment
it succeeds. Recovery from a half-finished sequence is the caller's job.

The engine URL must be a direct connection to the server. A transaction-
or statement-multiplexing pooler may route consecutive statements of one
logical sequence to different backends.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from pgtenant_engine.common.config import PgTenantSettings
from pgtenant_engine.common.exceptions import ProvisioningError, ValidationError
from pgtenant_engine.common.timeouts import with_timeout
from pgtenant_engine.credentials.generator import is_safe_identifier, is_safe_password

logger = logging.getLogger(__name__)

STEP_CREATE_ROLE = "create_role"
STEP_CREATE_DATABASE = "create_database"
STEP_GRANT = "grant_privileges"
STEP_TERMINATE = "terminate_sessions"
STEP_DROP_DATABASE = "drop_database"
STEP_DROP_ROLE = "drop_role"
STEP_RELOAD = "reload_configuration"
STEP_STATS = "database_stats"


@dataclass
class DatabaseStats:
    size_bytes: int
    active_connections: int


def _require_identifier(name: str) -> str:
    # Names are interpolated into DDL; only generated-style identifiers pass.
    if not is_safe_identifier(name):
        raise ValidationError(f"Unsafe SQL identifier: {name!r}")
    return name


class AdminEngine:
    """Non-transactional administrative primitives on a dedicated pool."""

    def __init__(self, settings: PgTenantSettings):
        self.settings = settings
        self.engine: AsyncEngine | None = None

    async def init(self) -> None:
        self.engine = create_async_engine(
            self.settings.admin_db_url,
            isolation_level="AUTOCOMMIT",
            pool_size=self.settings.admin_pool_size,
            max_overflow=0,
            pool_pre_ping=True,
        )

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None

    async def ping(self) -> None:
        await self._execute("SELECT 1", step="ping")

    # ── Provisioning ──

    async def create_role(self, role_name: str, password: str) -> None:
        _require_identifier(role_name)
        if not is_safe_password(password):
            raise ValidationError("Password contains characters that are unsafe in DDL")
        await self._execute(
            f"CREATE USER {role_name} WITH ENCRYPTED PASSWORD '{password}'",
            step=STEP_CREATE_ROLE,
        )

    async def create_database(self, database_name: str, owner: str) -> None:
        _require_identifier(database_name)
        _require_identifier(owner)
        await self._execute(
            f"CREATE DATABASE {database_name} OWNER {owner}",
            step=STEP_CREATE_DATABASE,
        )

    async def grant_all(self, database_name: str, role_name: str) -> None:
        _require_identifier(database_name)
        _require_identifier(role_name)
        await self._execute(
            f"GRANT ALL PRIVILEGES ON DATABASE {database_name} TO {role_name}",
            step=STEP_GRANT,
        )

    # ── Teardown ──

    async def terminate_sessions(self, database_name: str) -> int:
        """Kill every backend connected to ``database_name``. Returns the count."""
        result = await self._execute(
            "SELECT count(pg_terminate_backend(pid)) FROM pg_stat_activity "
            "WHERE datname = :name AND pid <> pg_backend_pid()",
            step=STEP_TERMINATE,
            params={"name": database_name},
        )
        return int(result or 0)

    async def drop_database(self, database_name: str) -> None:
        _require_identifier(database_name)
        await self._execute(f"DROP DATABASE IF EXISTS {database_name}", step=STEP_DROP_DATABASE)

    async def drop_role(self, role_name: str) -> None:
        _require_identifier(role_name)
        await self._execute(f"DROP ROLE IF EXISTS {role_name}", step=STEP_DROP_ROLE)

    # ── Runtime ──

    async def reload_configuration(self) -> None:
        ok = await self._execute("SELECT pg_reload_conf()", step=STEP_RELOAD)
        if not ok:
            raise ProvisioningError("pg_reload_conf() returned false", step=STEP_RELOAD)

    async def database_stats(self, database_name: str) -> DatabaseStats:
        if self.engine is None:
            raise RuntimeError("AdminEngine not initialized — call init() first")

        async def _query():
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(
                        "SELECT pg_database_size(:name) AS size_bytes, "
                        "(SELECT count(*) FROM pg_stat_activity WHERE datname = :name) "
                        "AS active_connections"
                    ),
                    {"name": database_name},
                )
                return result.one()

        try:
            row = await with_timeout(_query(), self.settings.admin_timeout, STEP_STATS)
        except SQLAlchemyError as exc:
            raise ProvisioningError(f"{STEP_STATS} failed: {exc}", step=STEP_STATS) from exc
        return DatabaseStats(
            size_bytes=int(row.size_bytes or 0),
            active_connections=int(row.active_connections or 0),
        )

    # ── Internal helpers ──

    async def _execute(self, sql: str, step: str, params: dict | None = None):
        """Run one statement on its own autocommit connection; return the scalar."""
        if self.engine is None:
            raise RuntimeError("AdminEngine not initialized — call init() first")

        async def _run():
            async with self.engine.connect() as conn:
                result = await conn.execute(text(sql), params or {})
                return result.scalar() if result.returns_rows else None

        try:
            value = await with_timeout(_run(), self.settings.admin_timeout, step)
        except SQLAlchemyError as exc:
            raise ProvisioningError(f"{step} failed: {exc}", step=step) from exc
        logger.debug("Admin statement completed", extra={"step": step})
        return value
