"""
Tenant credential generation.

Identifiers: ``tenant_<token>`` / ``user_<token>`` where ``<token>`` is the
leading hex of a random UUID4. Collisions are possible in principle; the
metadata store's unique constraints catch them and the lifecycle service
retries with fresh identifiers.

Passwords: letters and digits only, 12-16 characters. The admin engine
interpolates the password into ``CREATE ROLE ... PASSWORD '<pw>'``, so the
alphabet must never contain a character that needs quoting or escaping.
"""

import re
import secrets
import string
import uuid

import bcrypt

PASSWORD_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
PASSWORD_MIN_LEN = 12
PASSWORD_MAX_LEN = 16
TOKEN_LEN = 12

DATABASE_PREFIX = "tenant_"
ROLE_PREFIX = "user_"

IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")
PASSWORD_RE = re.compile(r"^[A-Za-z0-9]+$")

# bcrypt work factor for stored password hashes
BCRYPT_ROUNDS = 10


def new_token() -> str:
    """Random lowercase hex token (first TOKEN_LEN chars of a UUID4)."""
    return uuid.uuid4().hex[:TOKEN_LEN]


def new_identifiers() -> tuple[str, str]:
    """Return a fresh ``(database_name, role_name)`` pair sharing one token."""
    token = new_token()
    return f"{DATABASE_PREFIX}{token}", f"{ROLE_PREFIX}{token}"


def new_password() -> str:
    """Random alphanumeric password, length uniform in [12, 16]."""
    length = PASSWORD_MIN_LEN + secrets.randbelow(PASSWORD_MAX_LEN - PASSWORD_MIN_LEN + 1)
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def is_safe_identifier(name: str) -> bool:
    return bool(IDENTIFIER_RE.match(name))


def is_safe_password(password: str) -> bool:
    return bool(PASSWORD_RE.match(password))


def hash_password(password: str) -> str:
    """One-way salted bcrypt hash of a tenant password."""
    return bcrypt.hashpw(
        password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS),
    ).decode("utf-8")


def verify_password(password: str, stored: str) -> bool:
    """Check ``password`` against a hash produced by hash_password()."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        return False
