"""Header-keyed record CRUD over spreadsheet tabs.

Every mutation re-reads its tab immediately before writing and holds the
tab's write lock across read, row lookup and write. Row positions are
re-verified by id just before the write, so a structural delete that
shifted rows since the snapshot is detected instead of clobbering a
neighbouring row.
"""
import logging

from .errors import HeaderMissing, IdColumnNotFound, RecordNotFound, RemoteFailure
from .matrix import SheetMatrix, append_row, delete_row, normalize_header, read_matrix, read_row, write_row
from .sheets import SheetsBackend
from .tabs import normalize_tenant_key, resolve_tab
from .tenancy import TENANT_COLUMN, assert_tenant_scoped_value, row_in_scope, tenant_key_of

logger = logging.getLogger(__name__)

ID_COLUMN_CANDIDATES = ("id", "person_id", "record_id", "user_email")


def to_cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def resolve_id_column(headers: list[str], id_column: str | None = None) -> str:
    """Explicit column, else the first known id header, else the first header."""
    by_key = {normalize_header(h): h for h in reversed(headers) if h.strip()}
    if id_column:
        match = by_key.get(normalize_header(id_column))
        if match is None:
            raise IdColumnNotFound(f"id column {id_column!r} not found")
        return match
    for candidate in ID_COLUMN_CANDIDATES:
        if candidate in by_key:
            return by_key[candidate]
    for header in headers:
        if header.strip():
            return header
    raise IdColumnNotFound("tab has no usable id column")


def _is_blank(row: list[str]) -> bool:
    return not any(cell.strip() for cell in row)


def find_row_index(matrix: SheetMatrix, record_id: str, id_column: str, tenant_key: str) -> int | None:
    """First in-scope row whose id cell equals `record_id`.

    A row tagged with the caller's tenant is preferred over an untagged one
    sharing the same id.
    """
    target = record_id.strip()
    untagged = None
    for i, row in enumerate(matrix.rows):
        if matrix.cell(row, id_column).strip() != target:
            continue
        if not row_in_scope(matrix, row, tenant_key):
            continue
        if not matrix.has_column(TENANT_COLUMN) or normalize_tenant_key(matrix.cell(row, TENANT_COLUMN)) == tenant_key:
            return i
        if untagged is None:
            untagged = i
    return untagged


async def _load(client: SheetsBackend, table: str, tenant_key: str) -> SheetMatrix:
    tab = await resolve_tab(client, table, tenant_key)
    matrix = await read_matrix(client, tab)
    if not matrix.headers:
        raise HeaderMissing(f"tab {tab.title!r} has no header row")
    return matrix


async def _locate(client: SheetsBackend, table: str, record_id: str, id_column: str | None,
                  tenant_key: str) -> tuple[SheetMatrix, str, int | None]:
    matrix = await _load(client, table, tenant_key)
    id_col = resolve_id_column(matrix.headers, id_column)
    return matrix, id_col, find_row_index(matrix, record_id, id_col, tenant_key)


async def _verify_position(client: SheetsBackend, table: str, record_id: str, id_column: str | None,
                           tenant_key: str, matrix: SheetMatrix, id_col: str,
                           row_index: int) -> tuple[SheetMatrix, int | None]:
    """Confirm the row still holds `record_id`; re-locate once if it moved."""
    current = await read_row(client, matrix, row_index)
    if matrix.cell(current, id_col).strip() == record_id.strip():
        return matrix, row_index
    logger.warning("Row for %r in %s moved since read; re-locating", record_id, matrix.tab.title)
    matrix, id_col, row_index = await _locate(client, table, record_id, id_column, tenant_key)
    if row_index is None:
        return matrix, None
    current = await read_row(client, matrix, row_index)
    if matrix.cell(current, id_col).strip() != record_id.strip():
        raise RemoteFailure(f"row for {record_id!r} keeps moving in {matrix.tab.title!r}")
    return matrix, row_index


# ── Reads ──

async def list_records(client: SheetsBackend, table: str, tenant=None) -> list[dict]:
    tenant_key = tenant_key_of(tenant)
    matrix = await _load(client, table, tenant_key)
    return [
        matrix.to_record(row) for row in matrix.rows
        if not _is_blank(row) and row_in_scope(matrix, row, tenant_key)
    ]


async def get_record_by_id(client: SheetsBackend, table: str, record_id: str,
                           id_column: str | None = None, tenant=None) -> dict:
    tenant_key = tenant_key_of(tenant)
    matrix, _, row_index = await _locate(client, table, record_id, id_column, tenant_key)
    if row_index is None:
        raise RecordNotFound(f"{table}/{record_id} not found")
    return matrix.to_record(matrix.rows[row_index])


# ── Writes ──

async def create_record(client: SheetsBackend, table: str, payload: dict, tenant=None) -> dict:
    """Append one row. Unknown keys are dropped, missing columns default to ""."""
    tenant_key = tenant_key_of(tenant)
    tab = await resolve_tab(client, table, tenant_key)
    async with client.write_lock(tab.title):
        matrix = await read_matrix(client, tab)
        if not matrix.headers:
            raise HeaderMissing(f"tab {tab.title!r} has no header row")
        row = [""] * len(matrix.headers)
        for key, value in payload.items():
            matrix.set_cell(row, key, to_cell(value))
        if matrix.has_column(TENANT_COLUMN):
            assert_tenant_scoped_value(matrix.cell(row, TENANT_COLUMN), tenant_key)
            matrix.set_cell(row, TENANT_COLUMN, tenant_key)
        await append_row(client, matrix, row)
    logger.info("Created row in %s", tab.title)
    return matrix.to_record(row)


async def update_record_by_id(client: SheetsBackend, table: str, record_id: str, payload: dict,
                              id_column: str | None = None, tenant=None) -> dict:
    """Apply only the supplied keys to the existing row and rewrite it whole."""
    tenant_key = tenant_key_of(tenant)
    tab = await resolve_tab(client, table, tenant_key)
    async with client.write_lock(tab.title):
        matrix, id_col, row_index = await _locate(client, table, record_id, id_column, tenant_key)
        if row_index is not None:
            matrix, row_index = await _verify_position(
                client, table, record_id, id_column, tenant_key, matrix, id_col, row_index)
        if row_index is None:
            raise RecordNotFound(f"{table}/{record_id} not found")
        existing = matrix.padded(matrix.rows[row_index])
        row = list(existing)
        for key, value in payload.items():
            matrix.set_cell(row, key, to_cell(value))
        if matrix.has_column(TENANT_COLUMN):
            assert_tenant_scoped_value(matrix.cell(row, TENANT_COLUMN), tenant_key)
            if not matrix.cell(row, TENANT_COLUMN).strip():
                matrix.set_cell(row, TENANT_COLUMN, matrix.cell(existing, TENANT_COLUMN))
        await write_row(client, matrix, row_index, row)
    logger.info("Updated %s/%s", matrix.tab.title, record_id)
    return matrix.to_record(row)


async def upsert_record(client: SheetsBackend, table: str, record_id: str, payload: dict,
                        id_column: str | None = None, tenant=None) -> tuple[dict, bool]:
    """Update by id, creating the row when none matches. Returns (record, created)."""
    try:
        return await update_record_by_id(client, table, record_id, payload, id_column, tenant), False
    except RecordNotFound:
        return await create_record(client, table, payload, tenant), True


async def delete_record_by_id(client: SheetsBackend, table: str, record_id: str,
                              id_column: str | None = None, tenant=None) -> bool:
    """Structural row delete. An already-absent id returns False."""
    tenant_key = tenant_key_of(tenant)
    tab = await resolve_tab(client, table, tenant_key)
    async with client.write_lock(tab.title):
        matrix, id_col, row_index = await _locate(client, table, record_id, id_column, tenant_key)
        if row_index is not None:
            matrix, row_index = await _verify_position(
                client, table, record_id, id_column, tenant_key, matrix, id_col, row_index)
        if row_index is None:
            return False
        await delete_row(client, matrix, row_index)
    logger.info("Deleted %s/%s", matrix.tab.title, record_id)
    return True
