"""Connection-string templates handed to tenant applications.

All variants point at the same physical database; they differ only in port
and query parameters. ``pgbouncer=true`` and ``schema=public`` are client
hints (Prisma), not server parameters.
"""

from typing import Optional

MASK = "***"

USAGE_NOTE = (
    "Use DATABASE_URL for most queries (pooled), DIRECT_URL for migrations/"
    "transactions that need session-level features, and SHADOW_DATABASE_URL "
    "for the Prisma shadow database during migrations."
)


def build_connection_strings(
    host: str,
    database_name: str,
    role_name: str,
    password: Optional[str] = None,
    direct_port: int = 5432,
    pooler_port: int = 6432,
) -> dict[str, str]:
    """Return every connection-string variant.

    When ``password`` is None the secret is masked; the plaintext exists
    only in the create response.
    """
    secret = password if password is not None else MASK
    base = f"postgresql://{role_name}:{secret}@{host}"
    return {
        "connection_string": f"{base}:{direct_port}/{database_name}",
        "DATABASE_URL": (
            f"{base}:{pooler_port}/{database_name}"
            "?sslmode=disable&pgbouncer=true&connect_timeout=15"
        ),
        "DIRECT_URL": f"{base}:{direct_port}/{database_name}?sslmode=require",
        "SHADOW_DATABASE_URL": (
            f"{base}:{direct_port}/{database_name}?sslmode=require&schema=public"
        ),
    }


def format_bytes(size: int) -> str:
    """Human-readable size with 1024-based units, e.g. ``7.5 MB``."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
