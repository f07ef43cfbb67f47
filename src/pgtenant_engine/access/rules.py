"""Host-based access rules: address validation, rendering and parsing.

Rule line format: ``<mode> <database> <role> <address> <auth-method>``.
Lines are written column-aligned; readers split on any run of whitespace.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Iterable

from pgtenant_engine.common.exceptions import ConfigCorruptedError, ValidationError

ALLOW_MODE = "hostssl"
DENY_MODE = "host"
DENY_METHOD = "reject"
DENY_ALL_ADDRESSES = ("0.0.0.0/0", "::/0")

_ADDRESS_RE = re.compile(r"^([0-9]{1,3}(?:\.[0-9]{1,3}){3})(?:/([0-9]{1,2}))?$")


def normalize_address(raw: str) -> str:
    """Validate an IPv4 literal or CIDR and return it in CIDR form.

    A bare address gets ``/32``. Raises ValidationError on anything else.
    """
    candidate = (raw or "").strip()
    match = _ADDRESS_RE.match(candidate)
    if not match:
        raise ValidationError(
            "Invalid IP address format. Use xxx.xxx.xxx.xxx/xx "
            "or xxx.xxx.xxx.xxx/32 for single IP"
        )
    host, prefix = match.group(1), match.group(2)
    try:
        ipaddress.IPv4Address(host)
    except ipaddress.AddressValueError as exc:
        raise ValidationError(f"Invalid IPv4 address: {host}") from exc
    if prefix is None:
        prefix = "32"
    if not 0 <= int(prefix) <= 32:
        raise ValidationError(f"CIDR prefix must be between 0 and 32, got /{prefix}")
    return f"{host}/{int(prefix)}"


@dataclass(frozen=True)
class HbaRule:
    mode: str
    database: str
    role: str
    address: str
    method: str

    def render(self) -> str:
        return (
            f"{self.mode:<7} {self.database:<24} {self.role:<24} "
            f"{self.address:<23} {self.method}"
        )


@dataclass
class TenantRules:
    database_name: str
    role_name: str
    addresses: list[str] = field(default_factory=list)

    def rules(self, auth_method: str) -> list[HbaRule]:
        """Allow rules for each address, then the deny-all pair."""
        allow = [
            HbaRule(ALLOW_MODE, self.database_name, self.role_name, address, auth_method)
            for address in self.addresses
        ]
        deny = [
            HbaRule(DENY_MODE, self.database_name, self.role_name, address, DENY_METHOD)
            for address in DENY_ALL_ADDRESSES
        ]
        return allow + deny


def group_rows(rows: Iterable) -> list[TenantRules]:
    """Fold ordered (database_name, role_name, address) rows into per-tenant groups."""
    groups: dict[str, TenantRules] = {}
    for row in rows:
        group = groups.get(row.database_name)
        if group is None:
            group = groups[row.database_name] = TenantRules(row.database_name, row.role_name)
        if row.address:
            group.addresses.append(row.address)
    return list(groups.values())


def render_managed_region(groups: Iterable[TenantRules], auth_method: str) -> str:
    """Text placed strictly between the two markers.

    Tenants without entries emit nothing; they fall through to the
    unmanaged default policy.
    """
    parts = []
    for group in groups:
        if not group.addresses:
            continue
        lines = [rule.render() for rule in group.rules(auth_method)]
        parts.append(f"\n# Rules for {group.database_name}\n" + "\n".join(lines) + "\n")
    return "".join(parts) + "\n"


def _locate(content: str, start_marker: str, end_marker: str) -> tuple[int, int]:
    start = content.find(start_marker)
    if start == -1:
        raise ConfigCorruptedError(f"Start marker {start_marker!r} not found in access-control file")
    region_start = start + len(start_marker)
    end = content.find(end_marker, region_start)
    if end == -1:
        raise ConfigCorruptedError(f"End marker {end_marker!r} not found after start marker")
    return region_start, end


def splice_managed_region(
    content: str, region: str, start_marker: str, end_marker: str
) -> str:
    """Replace the text between the markers; everything else is kept byte-for-byte."""
    region_start, region_end = _locate(content, start_marker, end_marker)
    return content[:region_start] + region + content[region_end:]


def parse_rule_line(line: str) -> HbaRule | None:
    """Parse one rule line; comments and blank lines return None."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    fields = stripped.split()
    if len(fields) != 5:
        return None
    return HbaRule(*fields)


def parse_managed_rules(content: str, start_marker: str, end_marker: str) -> list[HbaRule]:
    """Rules currently installed in the managed region."""
    region_start, region_end = _locate(content, start_marker, end_marker)
    rules = []
    for line in content[region_start:region_end].splitlines():
        rule = parse_rule_line(line)
        if rule is not None:
            rules.append(rule)
    return rules
