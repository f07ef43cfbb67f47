"""Tenant lifecycle — create and drop tenant databases across two failure domains.

Metadata rows live in a transactional store; roles and databases are made by
autocommit DDL that cannot join that transaction. Creation therefore
commits the metadata first, then runs each engine step, pushing an undo
action after every success. Any later failure drains the undo actions in
reverse order, best-effort, and the original error is the one raised.

Create states: META_INSERTED -> ROLE_CREATED -> DB_CREATED -> GRANTED -> DONE,
or FAILED from any of them.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from pgtenant_engine.audit.service import (
    ACCESS_CONTROL_STALE,
    TENANT_CREATE_FAILED,
    TENANT_CREATED,
    TENANT_DELETE_FAILED,
    TENANT_DELETED,
)
from pgtenant_engine.common.config import PgTenantSettings
from pgtenant_engine.common.exceptions import (
    ConflictError,
    OperationTimeoutError,
    PgTenantError,
    ProvisioningError,
    StoreUnavailableError,
    ValidationError,
)
from pgtenant_engine.common.timeouts import with_timeout
from pgtenant_engine.credentials.generator import (
    hash_password,
    new_identifiers,
    new_password,
)
from pgtenant_engine.engine.admin import (
    STEP_CREATE_DATABASE,
    STEP_CREATE_ROLE,
    STEP_DROP_DATABASE,
    STEP_DROP_ROLE,
    STEP_GRANT,
    STEP_TERMINATE,
    AdminEngine,
)
from pgtenant_engine.tenants.connection_strings import (
    USAGE_NOTE,
    build_connection_strings,
    format_bytes,
)
from pgtenant_engine.tenants.models import TenantModel
from pgtenant_engine.tenants.store import MetadataStore

logger = logging.getLogger(__name__)

STEP_METADATA = "metadata_insert"

StepFailure = (PgTenantError, SQLAlchemyError, OSError)


class CreateState(str, enum.Enum):
    META_INSERTED = "META_INSERTED"
    ROLE_CREATED = "ROLE_CREATED"
    DB_CREATED = "DB_CREATED"
    GRANTED = "GRANTED"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class ProvisionedTenant:
    """A freshly created tenant plus its one-time credentials."""

    tenant: TenantModel
    password: str
    connection_strings: dict[str, str]


@dataclass
class CompensationStack:
    """Ordered undo actions, drained newest-first on failure."""

    actions: list[tuple[str, Callable[[], Awaitable[Any]]]] = field(default_factory=list)

    def push(self, name: str, action: Callable[[], Awaitable[Any]]) -> None:
        self.actions.append((name, action))

    async def unwind(self) -> list[str]:
        """Run every undo action; return the names of those that failed.

        A failing action is logged and skipped, never retried.
        """
        failed = []
        while self.actions:
            name, action = self.actions.pop()
            try:
                await action()
                logger.info("Compensation succeeded", extra={"compensation": name})
            except Exception:
                logger.exception("Compensation failed", extra={"compensation": name})
                failed.append(name)
        return failed


class TenantLifecycleService:
    """Create, delete and inspect tenant databases."""

    def __init__(
        self,
        settings: PgTenantSettings,
        store: MetadataStore,
        admin: AdminEngine,
        compiler=None,
    ):
        self.settings = settings
        self.store = store
        self.admin = admin
        self.compiler = compiler

    # ── Create ──

    async def create_tenant(
        self,
        friendly_name: str,
        owner_email: str,
        max_connections: Optional[int] = None,
    ) -> ProvisionedTenant:
        """Provision a role and database for a new tenant.

        Steps:
        1. Generate identifiers and password
        2. Insert tenant row + audit record (one transaction); retried with
           new identifiers on a uniqueness conflict
        3. Create role, 4. create database, 5. grant privileges; each
           failure unwinds what the earlier steps made
        """
        if not friendly_name or not owner_email:
            raise ValidationError("friendlyName and ownerEmail are required")
        max_connections = max_connections or self.settings.default_max_connections

        tenant, password = await self._insert_with_retry(
            friendly_name, owner_email, max_connections,
        )
        database_name, role_name = tenant.database_name, tenant.role_name
        state = CreateState.META_INSERTED
        self._log_state(tenant, state)

        undo = CompensationStack()
        undo.push("delete_metadata", lambda: self._delete_metadata(database_name))

        steps = [
            (
                STEP_CREATE_ROLE, CreateState.ROLE_CREATED,
                lambda: self.admin.create_role(role_name, password),
                ("drop_role", lambda: self.admin.drop_role(role_name)),
            ),
            (
                STEP_CREATE_DATABASE, CreateState.DB_CREATED,
                lambda: self.admin.create_database(database_name, role_name),
                ("drop_database", lambda: self.admin.drop_database(database_name)),
            ),
            (
                STEP_GRANT, CreateState.GRANTED,
                lambda: self.admin.grant_all(database_name, role_name),
                None,
            ),
        ]

        for step, next_state, action, compensation in steps:
            try:
                await action()
            except StepFailure as exc:
                # A timed-out step may still have completed on the server.
                if isinstance(exc, OperationTimeoutError) and compensation:
                    undo.push(*compensation)
                await self._fail_create(tenant, state, step, exc, undo)
            if compensation:
                undo.push(*compensation)
            state = next_state
            self._log_state(tenant, state)

        state = CreateState.DONE
        self._log_state(tenant, state)
        return ProvisionedTenant(
            tenant=tenant,
            password=password,
            connection_strings=self._connection_strings(tenant, password),
        )

    async def _insert_with_retry(
        self, friendly_name: str, owner_email: str, max_connections: int,
    ) -> tuple[TenantModel, str]:
        attempts = max(1, self.settings.create_max_attempts)
        for attempt in range(1, attempts + 1):
            database_name, role_name = new_identifiers()
            password = new_password()
            try:
                tenant = await with_timeout(
                    self._insert_metadata(
                        database_name, role_name, hash_password(password),
                        owner_email, friendly_name, max_connections,
                    ),
                    self.settings.store_timeout,
                    STEP_METADATA,
                )
                return tenant, password
            except ConflictError:
                logger.warning(
                    "Generated identifiers collided, retrying",
                    extra={"database_name": database_name, "attempt": attempt},
                )
                if attempt == attempts:
                    raise
            except OperationTimeoutError as exc:
                # The insert may have committed; remove it if it did.
                await CompensationStack(
                    [("delete_metadata", lambda: self._delete_metadata(database_name))]
                ).unwind()
                raise StoreUnavailableError(
                    f"Metadata store did not respond: {exc.message}"
                ) from exc
        raise ConflictError("Could not allocate unique tenant identifiers")

    async def _insert_metadata(
        self,
        database_name: str,
        role_name: str,
        password_hash: str,
        owner_email: str,
        friendly_name: str,
        max_connections: int,
    ) -> TenantModel:
        async with self.store.unit_of_work() as session:
            tenant = await self.store.insert_tenant(
                session,
                database_name=database_name,
                role_name=role_name,
                password_hash=password_hash,
                owner_email=owner_email,
                friendly_name=friendly_name,
                max_connections=max_connections,
            )
            await self.store.append_audit(
                session, TENANT_CREATED, tenant.id,
                {"database_name": database_name, "username": role_name},
            )
            return tenant

    async def _delete_metadata(self, database_name: str) -> None:
        async def _delete():
            async with self.store.unit_of_work() as session:
                await self.store.delete_tenant_by_name(session, database_name)

        await with_timeout(_delete(), self.settings.store_timeout, "delete metadata")

    async def _fail_create(
        self,
        tenant: TenantModel,
        state: CreateState,
        step: str,
        exc: BaseException,
        undo: CompensationStack,
    ) -> None:
        logger.error(
            "Tenant creation failed",
            extra={"tenant_id": tenant.id, "state": state.value, "step": step},
        )
        failed_compensations = await undo.unwind()
        self._log_state(tenant, CreateState.FAILED)

        error = self._as_provisioning_error(exc, step, tenant.id)
        await self._audit_failure(
            TENANT_CREATE_FAILED,
            tenant.id,
            {
                "database_name": tenant.database_name,
                "username": tenant.role_name,
                "state": state.value,
                "step": step,
                "error": error.message,
                "failed_compensations": failed_compensations,
            },
            error,
        )
        if error is exc:
            raise error
        raise error from exc

    # ── Delete ──

    async def delete_tenant(self, tenant_id: str) -> None:
        """Terminate sessions, drop database and role, then remove metadata.

        Engine objects go first: a metadata row without a database is a
        smaller problem than a database nobody knows about.
        """
        tenant = await self.get_tenant(tenant_id)
        database_name, role_name = tenant.database_name, tenant.role_name
        whitelist_count = await self._read(
            lambda session: self.store.count_whitelist(session, tenant_id),
            "count whitelist",
        )

        step = STEP_TERMINATE
        try:
            terminated = await self.admin.terminate_sessions(database_name)
            step = STEP_DROP_DATABASE
            await self.admin.drop_database(database_name)
            step = STEP_DROP_ROLE
            await self.admin.drop_role(role_name)
        except StepFailure as exc:
            error = self._as_provisioning_error(exc, step, tenant_id)
            logger.error(
                "Tenant deletion failed",
                extra={"tenant_id": tenant_id, "step": step},
            )
            await self._audit_failure(
                TENANT_DELETE_FAILED,
                tenant_id,
                {"database_name": database_name, "username": role_name,
                 "step": step, "error": error.message},
                error,
            )
            if error is exc:
                raise error
            raise error from exc

        async def _remove():
            async with self.store.unit_of_work() as session:
                removed = await self.store.delete_tenant(session, tenant_id)
                await self.store.append_audit(
                    session, TENANT_DELETED, tenant_id,
                    {"database_name": database_name, "username": role_name,
                     "whitelist_entries_removed": removed,
                     "sessions_terminated": terminated},
                )

        try:
            await with_timeout(_remove(), self.settings.store_timeout, "delete metadata")
        except (StoreUnavailableError, OperationTimeoutError) as exc:
            logger.error(
                "Engine objects dropped but metadata delete failed",
                extra={"tenant_id": tenant_id, "database_name": database_name},
            )
            raise StoreUnavailableError(
                f"Database {database_name} was dropped but its metadata could not "
                f"be removed: {exc.message}"
            ) from exc

        logger.info(
            "Tenant deleted",
            extra={"tenant_id": tenant_id, "database_name": database_name},
        )
        if whitelist_count and self.compiler is not None:
            await self._resync_access_control(tenant_id)

    async def _resync_access_control(self, tenant_id: str) -> None:
        try:
            await self.compiler.recompile()
        except PgTenantError as exc:
            logger.warning(
                "Access-control file is stale after tenant delete",
                extra={"tenant_id": tenant_id, "code": exc.code},
            )
            try:
                async with self.store.unit_of_work() as session:
                    await self.store.append_audit(
                        session, ACCESS_CONTROL_STALE, tenant_id,
                        {"code": exc.code, "error": exc.message},
                    )
            except PgTenantError:
                logger.exception("Could not audit stale access-control file")

    # ── Read ──

    async def list_tenants(self) -> list[TenantModel]:
        return await self._read(self.store.list_tenants, "list tenants")

    async def get_tenant(self, tenant_id: str) -> TenantModel:
        return await self._read(
            lambda session: self.store.get_tenant(session, tenant_id), "get tenant",
        )

    async def get_stats(self, tenant_id: str) -> dict[str, Any]:
        """Size and connection counts; NotFound before any engine call."""
        tenant = await self.get_tenant(tenant_id)
        stats = await self.admin.database_stats(tenant.database_name)
        return {
            "database_id": tenant.id,
            "database_name": tenant.database_name,
            "size_bytes": stats.size_bytes,
            "size_pretty": format_bytes(stats.size_bytes),
            "active_connections": stats.active_connections,
            "max_connections": tenant.max_connections,
        }

    async def get_connection_strings(self, tenant_id: str) -> dict[str, Any]:
        """Masked connection strings for an existing tenant."""
        tenant = await self.get_tenant(tenant_id)
        return {
            "database_id": tenant.id,
            "database_name": tenant.database_name,
            "username": tenant.role_name,
            **self._connection_strings(tenant, None),
            "note": USAGE_NOTE,
        }

    # ── Internal helpers ──

    def _connection_strings(self, tenant: TenantModel, password: Optional[str]) -> dict[str, str]:
        return build_connection_strings(
            host=self.settings.resolved_public_host,
            database_name=tenant.database_name,
            role_name=tenant.role_name,
            password=password,
            direct_port=self.settings.direct_port,
            pooler_port=self.settings.pooler_port,
        )

    async def _read(self, func, operation: str):
        async def _run():
            async with self.store.unit_of_work() as session:
                return await func(session)

        return await with_timeout(_run(), self.settings.store_timeout, operation)

    async def _audit_failure(
        self,
        action: str,
        resource_id: str,
        details: dict[str, Any],
        error: PgTenantError,
    ) -> None:
        """Record a failed step; escalate if the store cannot take the record."""

        async def _record():
            async with self.store.unit_of_work() as session:
                await self.store.append_audit(session, action, resource_id, details)

        try:
            await with_timeout(_record(), self.settings.store_timeout, "audit failure")
        except (PgTenantError, SQLAlchemyError):
            logger.exception(
                "Failure audit could not be written",
                extra={"action": action, "resource_id": resource_id},
            )
            raise StoreUnavailableError(
                f"{error.message} (metadata store unreachable, failure not audited)"
            ) from error

    @staticmethod
    def _as_provisioning_error(
        exc: BaseException, step: str, tenant_id: str
    ) -> ProvisioningError:
        if isinstance(exc, ProvisioningError):
            exc.tenant_id = tenant_id
            exc.step = exc.step or step
            return exc
        message = getattr(exc, "message", None) or str(exc)
        return ProvisioningError(f"{step} failed: {message}", step=step, tenant_id=tenant_id)

    @staticmethod
    def _log_state(tenant: TenantModel, state: CreateState) -> None:
        logger.info(
            "Tenant create state",
            extra={"tenant_id": tenant.id, "database_name": tenant.database_name,
                   "state": state.value},
        )
