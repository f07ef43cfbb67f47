"""PgTenant-Engine configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

_INSECURE_DEFAULTS = {
    "api_key": "insecure-admin-key-change-me",
}


class PgTenantSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PGTENANT_")

    environment: str = "development"
    log_level: str = "INFO"

    # Metadata store (transactional control database)
    db_url: str = "sqlite+aiosqlite:///./data/pgtenant.db"

    # Admin engine; must be a direct connection, never the pooler port
    admin_db_url: str = "postgresql+asyncpg://postgres@localhost:5432/postgres"
    admin_pool_size: int = 5

    # API
    api_title: str = "PgTenant-Engine"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 2600
    api_prefix: str = "/api"

    # Connection strings handed back to tenants
    public_host: str = ""
    direct_port: int = 5432
    pooler_port: int = 6432

    # Host-based access file
    hba_path: str = "/etc/postgresql/16/main/pg_hba.conf"
    hba_start_marker: str = "### API_MANAGED_SECTION_START ###"
    hba_end_marker: str = "### API_MANAGED_SECTION_END ###"
    hba_auth_method: str = "scram-sha-256"
    hba_reload_command: str = ""  # e.g. "sudo systemctl reload postgresql"

    # Tenant defaults
    default_max_connections: int = 20
    create_max_attempts: int = 3

    # Timeouts (seconds)
    store_timeout: float = 10.0
    admin_timeout: float = 30.0
    file_timeout: float = 5.0
    reload_timeout: float = 10.0

    # Pagination
    default_page_size: int = 50
    max_page_size: int = 200

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def resolved_public_host(self) -> str:
        """Host advertised in tenant connection strings.

        Falls back to the admin engine host when no public host is set.
        """
        if self.public_host:
            return self.public_host
        return make_url(self.admin_db_url).host or "localhost"

    def validate_for_production(self) -> None:
        """Raise on unsafe settings; warn about insecure defaults in development."""
        admin_port = make_url(self.admin_db_url).port
        if admin_port is not None and admin_port == self.pooler_port:
            raise RuntimeError(
                f"PGTENANT_ADMIN_DB_URL points at the pooler port ({self.pooler_port}). "
                "Administrative DDL must use a direct connection to the engine."
            )

        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if not self.is_development and insecure_fields:
            env_vars = ", ".join(f"PGTENANT_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default API key — set PGTENANT_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> PgTenantSettings:
    settings = PgTenantSettings()
    settings.validate_for_production()
    return settings
