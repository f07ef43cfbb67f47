"""PgTenant-Engine: PostgreSQL tenant database provisioner and access manager."""

from pgtenant_engine.client import TenantClient
from pgtenant_engine.credentials.generator import new_identifiers, new_password
from pgtenant_engine.tenants.connection_strings import build_connection_strings

__all__ = [
    "TenantClient",
    "new_identifiers",
    "new_password",
    "build_connection_strings",
]
__version__ = "0.1.0"
