"""Tenant context and row-level tenant scoping."""
from dataclasses import dataclass, field

from .errors import CrossTenantBlocked
from .tabs import DEFAULT_TENANT_KEY, DEFAULT_TENANT_NAME, normalize_tenant_key

TENANT_COLUMN = "tenant_key"

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"


@dataclass(frozen=True)
class TenantContext:
    """Verified caller scope, produced by the tenant guard."""
    tenant_key: str = DEFAULT_TENANT_KEY
    tenant_name: str = DEFAULT_TENANT_NAME
    role: str = ROLE_USER
    person_id: str = ""
    tenants: list[dict] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def tenant_key_of(tenant: "TenantContext | str | None") -> str:
    if isinstance(tenant, TenantContext):
        return normalize_tenant_key(tenant.tenant_key)
    return normalize_tenant_key(tenant)


def is_tenant_scoped_value_allowed(candidate: str | None, tenant_key: str | None) -> bool:
    """Empty row tenant (legacy/default rows) is visible to everyone."""
    if not candidate or not candidate.strip():
        return True
    return normalize_tenant_key(candidate) == normalize_tenant_key(tenant_key)


def assert_tenant_scoped_value(candidate: str | None, tenant_key: str | None,
                               details: str = "cross_tenant_row_blocked"):
    """Re-validate a record fetched outside tenant scope before acting on it."""
    if not is_tenant_scoped_value_allowed(candidate, tenant_key):
        raise CrossTenantBlocked(details)


def row_in_scope(matrix, row: list[str], tenant_key: str | None) -> bool:
    if not matrix.has_column(TENANT_COLUMN):
        return True
    return is_tenant_scoped_value_allowed(matrix.cell(row, TENANT_COLUMN), tenant_key)
