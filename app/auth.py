"""Tenant guard: caller identity + requested tenant -> verified TenantContext."""
import logging

from fastapi import Depends, Header

from .deadline import within_deadline
from .errors import Forbidden, InvalidRequest, Unauthenticated
from .family import read_field
from .matrix import read_matrix
from .people import parse_bool
from .records import create_record, list_records, to_cell, update_record_by_id
from .sheets import SheetsBackend, get_sheets
from .tabs import DEFAULT_TENANT_KEY, DEFAULT_TENANT_NAME, normalize_tenant_key, resolve_tab
from .tenancy import ROLE_ADMIN, ROLE_USER, TenantContext, tenant_key_of

logger = logging.getLogger(__name__)

USER_ACCESS_TAB = "UserAccess"
AUTH_HEADER = "X-Forwarded-User"
ACCESS_ID_COLUMN = "user_email"


def to_role(value: str | None) -> str:
    return ROLE_ADMIN if (value or "").strip().upper() == ROLE_ADMIN else ROLE_USER


# ── Grants ──

async def get_enabled_grants(client: SheetsBackend, email: str) -> list[dict]:
    """Enabled UserAccess rows for `email`, across every tenant.

    UserAccess is a global tab, so it is read without row-level tenant scoping.
    """
    target = email.strip().lower()
    matrix = await read_matrix(client, await resolve_tab(client, USER_ACCESS_TAB))
    grants = []
    for row in matrix.rows:
        if matrix.cell(row, "user_email").strip().lower() != target:
            continue
        if not parse_bool(matrix.cell(row, "is_enabled")):
            continue
        tenant_key = normalize_tenant_key(matrix.cell(row, "tenant_key"))
        tenant_name = matrix.cell(row, "tenant_name").strip()
        if not tenant_name:
            tenant_name = DEFAULT_TENANT_NAME if tenant_key == DEFAULT_TENANT_KEY else tenant_key
        grants.append({
            "tenant_key": tenant_key,
            "tenant_name": tenant_name,
            "role": to_role(matrix.cell(row, "role")),
            "person_id": matrix.cell(row, "person_id").strip(),
        })
    return grants


async def resolve_tenant(client: SheetsBackend, caller_email: str | None,
                         requested_tenant_key: str | None) -> TenantContext:
    if not caller_email or not caller_email.strip():
        raise Unauthenticated("authentication required")
    grants = await get_enabled_grants(client, caller_email)
    requested = normalize_tenant_key(requested_tenant_key)
    grant = next((g for g in grants if g["tenant_key"] == requested), None)
    if grant is None:
        logger.info("Denied %s access to tenant %s", caller_email, requested)
        raise Forbidden(f"no access to tenant {requested}")
    return TenantContext(
        tenant_key=grant["tenant_key"],
        tenant_name=grant["tenant_name"],
        role=grant["role"],
        person_id=grant["person_id"],
        tenants=[{k: g[k] for k in ("tenant_key", "tenant_name", "role")} for g in grants],
    )


def can_edit_person(ctx: TenantContext, person_id: str) -> bool:
    return ctx.is_admin or (bool(ctx.person_id) and ctx.person_id == person_id)


# ── Grant management ──

def row_to_access(record: dict, tenant_key: str) -> dict:
    return {
        "user_email": read_field(record, "user_email").lower(),
        "tenant_key": tenant_key,
        "tenant_name": read_field(record, "tenant_name"),
        "role": to_role(read_field(record, "role")),
        "person_id": read_field(record, "person_id"),
        "is_enabled": parse_bool(read_field(record, "is_enabled")),
    }


async def _tenant_grant_rows(client: SheetsBackend, tenant_key: str) -> list[dict]:
    """UserAccess rows granting this tenant. Untagged rows belong to the default tenant."""
    rows = await list_records(client, USER_ACCESS_TAB, tenant_key)
    return [r for r in rows
            if read_field(r, "user_email") and normalize_tenant_key(read_field(r, "tenant_key")) == tenant_key]


async def list_tenant_access(client: SheetsBackend, tenant) -> list[dict]:
    tenant_key = tenant_key_of(tenant)
    grants = [row_to_access(r, tenant_key) for r in await _tenant_grant_rows(client, tenant_key)]
    return sorted(grants, key=lambda g: g["user_email"])


async def upsert_tenant_access(client: SheetsBackend, tenant, user_email: str, role: str,
                               person_id: str = "", is_enabled: bool = True) -> tuple[dict, bool]:
    """Create or rewrite one user's grant for this tenant. Returns (grant, created).

    Grants the same user holds in other tenants are left untouched.
    """
    tenant_key = tenant_key_of(tenant)
    email = user_email.strip().lower()
    if not email:
        raise InvalidRequest("user_email is required")
    if isinstance(tenant, TenantContext) and tenant.tenant_name:
        tenant_name = tenant.tenant_name
    else:
        tenant_name = DEFAULT_TENANT_NAME if tenant_key == DEFAULT_TENANT_KEY else tenant_key
    payload = {
        "user_email": email,
        "tenant_key": tenant_key,
        "tenant_name": tenant_name,
        "role": to_role(role),
        "person_id": person_id.strip(),
        "is_enabled": to_cell(is_enabled),
    }
    existing = next((r for r in await _tenant_grant_rows(client, tenant_key)
                     if read_field(r, "user_email").lower() == email), None)
    if existing is None:
        record = await create_record(client, USER_ACCESS_TAB, payload, tenant_key)
        created = True
    else:
        payload["user_email"] = read_field(existing, "user_email")
        record = await update_record_by_id(client, USER_ACCESS_TAB, payload["user_email"], payload,
                                           ACCESS_ID_COLUMN, tenant_key)
        created = False
    logger.info("%s %s grant for %s in %s", "Created" if created else "Updated", payload["role"], email, tenant_key)
    return row_to_access(record, tenant_key), created


# ── FastAPI dependencies ──

def get_caller_email(x_forwarded_user: str | None = Header(default=None, alias=AUTH_HEADER)) -> str | None:
    """Caller identity injected by the forward-auth proxy in front of the app."""
    if not x_forwarded_user:
        return None
    return x_forwarded_user.strip().lower()


async def get_tenant_context(tenant_key: str, email: str | None = Depends(get_caller_email),
                             client: SheetsBackend = Depends(get_sheets)) -> TenantContext:
    return await within_deadline(resolve_tenant(client, email, tenant_key))


async def require_tenant_admin(ctx: TenantContext = Depends(get_tenant_context)) -> TenantContext:
    if not ctx.is_admin:
        raise Forbidden("admin role required")
    return ctx
