"""PgTenant-Engine exception hierarchy."""

from typing import Any, Optional


class PgTenantError(Exception):
    """Base exception for all PgTenant errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "PGTENANT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(PgTenantError):
    """Raised for malformed input, before any I/O is attempted."""

    status_code = 400

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, code="VALIDATION_ERROR")


class NotFoundError(PgTenantError):
    """Raised when a referenced record does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class TenantNotFoundError(NotFoundError):
    def __init__(self, message: str = "Database not found"):
        super().__init__(message)


class WhitelistEntryNotFoundError(NotFoundError):
    def __init__(self, message: str = "IP whitelist entry not found"):
        super().__init__(message)


class ConflictError(PgTenantError):
    """Raised on a uniqueness violation in the metadata store."""

    status_code = 409

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, code="CONFLICT")


class ProvisioningError(PgTenantError):
    """Raised when an admin engine step fails during create or delete."""

    status_code = 500

    def __init__(
        self,
        message: str = "Provisioning failed",
        step: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ):
        self.step = step
        self.tenant_id = tenant_id
        super().__init__(message, code="PROVISIONING_FAILED")


class StoreUnavailableError(PgTenantError):
    """Raised when the metadata store cannot be reached to record an outcome."""

    status_code = 503

    def __init__(self, message: str = "Metadata store unreachable"):
        super().__init__(message, code="STORE_UNAVAILABLE")


class ConfigCorruptedError(PgTenantError):
    """Raised when the access-control file is missing its managed-region markers."""

    status_code = 500

    def __init__(self, message: str = "Access-control file markers not found"):
        super().__init__(message, code="CONFIG_CORRUPTED")


class ConfigWriteError(PgTenantError):
    """Raised when the access-control file could not be read or replaced."""

    status_code = 500

    def __init__(self, message: str = "Failed to write access-control file"):
        super().__init__(message, code="CONFIG_WRITE_FAILED")


class ReloadError(PgTenantError):
    """Raised when the file was written but the engine reload signal failed."""

    status_code = 502

    def __init__(self, message: str = "Engine configuration reload failed"):
        super().__init__(message, code="RELOAD_FAILED")


class OperationTimeoutError(PgTenantError):
    """Raised when an external call exceeds its configured timeout."""

    status_code = 504

    def __init__(self, message: str = "Operation timed out", operation: str = ""):
        self.operation = operation
        super().__init__(message, code="TIMEOUT")


class AccessControlStaleError(PgTenantError):
    """Whitelist change committed, but the access-control file is stale.

    Warning-level: the metadata is the source of truth and is correct.
    ``cause`` is the compiler failure; ``record`` the committed entry, if any.
    """

    status_code = 202

    def __init__(
        self,
        message: str = "Whitelist saved but access-control file is stale",
        cause: Optional[PgTenantError] = None,
        record: Any = None,
    ):
        self.cause = cause
        self.record = record
        super().__init__(message, code="ACCESS_CONTROL_STALE")

    @property
    def file_written(self) -> bool:
        """True when only the reload signal failed."""
        return isinstance(self.cause, ReloadError)
