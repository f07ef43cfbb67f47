"""Service container for PgTenant-Engine.

Both connection pools are built here, handed to the services explicitly,
and drained by ``close()``.
"""

from dataclasses import dataclass

from fastapi import Request

from pgtenant_engine.access.compiler import AccessControlCompiler, build_reloader
from pgtenant_engine.access.service import WhitelistService
from pgtenant_engine.audit.service import AuditService
from pgtenant_engine.common.config import PgTenantSettings, get_settings
from pgtenant_engine.common.database import DatabaseManager
from pgtenant_engine.engine.admin import AdminEngine
from pgtenant_engine.tenants.service import TenantLifecycleService
from pgtenant_engine.tenants.store import MetadataStore


@dataclass
class ServiceContainer:
    settings: PgTenantSettings
    db: DatabaseManager
    admin: AdminEngine
    audit: AuditService
    store: MetadataStore
    compiler: AccessControlCompiler
    tenants: TenantLifecycleService
    whitelist: WhitelistService

    async def start(self, create_schema: bool = True) -> None:
        await self.db.init()
        if create_schema:
            await self.db.create_all()
        await self.admin.init()

    async def probe(self) -> None:
        """Fail fast if either engine is unreachable."""
        await self.db.ping()
        await self.admin.ping()

    async def close(self) -> None:
        await self.admin.close()
        await self.db.close()


def build_container(
    settings: PgTenantSettings | None = None,
    admin: AdminEngine | None = None,
) -> ServiceContainer:
    settings = settings or get_settings()
    db = DatabaseManager(settings)
    admin = admin or AdminEngine(settings)
    audit = AuditService()
    store = MetadataStore(db, audit)
    compiler = AccessControlCompiler(settings, store, build_reloader(settings, admin))
    return ServiceContainer(
        settings=settings,
        db=db,
        admin=admin,
        audit=audit,
        store=store,
        compiler=compiler,
        tenants=TenantLifecycleService(settings, store, admin, compiler=compiler),
        whitelist=WhitelistService(settings, store, compiler),
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's container."""
    return request.app.state.container
