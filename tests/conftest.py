"""Shared fixtures: in-memory spreadsheet, seeded tabs, tenant contexts, API clients."""
import os

# Set env vars BEFORE any app imports
os.environ.setdefault("SHEET_ID", "test-sheet")
os.environ.setdefault("GOOGLE_ACCESS_TOKEN", "test-token")

import re

import pytest
from fastapi.testclient import TestClient

from app.sheets import SheetsBackend, Tab, get_sheets
from app.tenancy import ROLE_ADMIN, ROLE_USER, TenantContext


PEOPLE_HEADERS = ["person_id", "display_name", "birth_date", "phones", "address", "hobbies",
                  "notes", "photo_file_id", "is_pinned", "relationships", "tenant_key"]
REL_HEADERS = ["rel_id", "from_person_id", "to_person_id", "rel_type", "tenant_key"]
FU_HEADERS = ["family_unit_id", "partner1_person_id", "partner2_person_id", "tenant_key"]
ATTR_HEADERS = ["attribute_id", "tenant_key", "person_id", "attribute_type", "value_text", "value_json",
                "label", "is_primary", "sort_order", "start_date", "end_date", "visibility", "notes"]
ACCESS_HEADERS = ["user_email", "is_enabled", "role", "person_id", "tenant_key", "tenant_name"]

_CELLS = re.compile(r"^A(\d+):[A-Z]+(\d+)?$")


# ── In-memory spreadsheet ──

class FakeSheets(SheetsBackend):
    """Sheets backend over plain lists. `session()` gives a per-request view on the same data."""

    def __init__(self, grids: dict | None = None, sheet_ids: dict | None = None, writes: list | None = None):
        super().__init__()
        self.grids = grids if grids is not None else {}
        self.sheet_ids = sheet_ids if sheet_ids is not None else {}
        self.writes = writes if writes is not None else []

    def session(self) -> "FakeSheets":
        return type(self)(self.grids, self.sheet_ids, self.writes)

    def add_tab(self, title: str, headers: list[str], rows: list[list[str]] = ()):
        self.sheet_ids[title] = len(self.sheet_ids) + 100
        self.grids[title] = [list(headers)] + [list(r) for r in rows]

    def add_empty_tab(self, title: str):
        self.sheet_ids[title] = len(self.sheet_ids) + 100
        self.grids[title] = []

    def records(self, title: str) -> list[dict]:
        headers, *rows = self.grids[title]
        return [dict(zip(headers, r + [""] * (len(headers) - len(r)))) for r in rows]

    def writes_to(self, title: str) -> list[tuple]:
        return [w for w in self.writes if w[1] == title]

    async def list_tabs(self):
        return [Tab(title=t, sheet_id=sid) for t, sid in self.sheet_ids.items()]

    async def get_values(self, title, cells="A1:ZZ"):
        grid = self.grids[title]
        m = _CELLS.match(cells)
        start = int(m.group(1))
        end = int(m.group(2)) if m.group(2) else len(grid)
        return [list(r) for r in grid[start - 1:end]]

    async def update_values(self, title, cells, rows):
        n = int(_CELLS.match(cells).group(1))
        self.grids[title][n - 1] = list(rows[0])
        self.writes.append(("update", title, n))

    async def append_row(self, title, row):
        self.grids[title].append(list(row))
        self.writes.append(("append", title, len(self.grids[title])))

    async def delete_rows(self, sheet_id, start_index, end_index):
        title = next(t for t, sid in self.sheet_ids.items() if sid == sheet_id)
        del self.grids[title][start_index:end_index]
        self.writes.append(("delete", title, start_index))


@pytest.fixture
def sheets():
    """Default-tenant tabs plus a dedicated tenant-a People tab and the UserAccess grants."""
    fake = FakeSheets()
    fake.add_tab("People", PEOPLE_HEADERS, [
        ["p1", "Zed Root", "1950-02-01", "", "", "", "", "", "TRUE", "", ""],
        ["p2", "Amy Root", "1952-03-04", "", "", "", "", "", "", "", ""],
    ])
    fake.add_tab("tenant-a__People", PEOPLE_HEADERS, [
        ["p1", "Ana", "1980-01-01", "555", "", "", "", "", "", "", "tenant-a"],
        ["p2", "Ben", "", "", "", "", "", "", "", "", "tenant-a"],
        ["p3", "Cal", "", "", "", "", "", "", "", "", "tenant-a"],
        ["p4", "Dee", "", "", "", "", "", "", "", "", "tenant-a"],
        ["p5", "Eve", "", "", "", "", "", "", "", "", "tenant-a"],
        ["p6", "Fay", "", "", "", "", "", "", "", "", "tenant-a"],
    ])
    fake.add_tab("Relationships", REL_HEADERS)
    fake.add_tab("FamilyUnits", FU_HEADERS)
    fake.add_tab("PersonAttributes", ATTR_HEADERS)
    fake.add_tab("UserAccess", ACCESS_HEADERS, [
        ["alice@example.com", "TRUE", "ADMIN", "p1", "tenant-a", "Tenant A"],
        ["bob@example.com", "TRUE", "USER", "p2", "tenant-a", "Tenant A"],
        ["carol@example.com", "TRUE", "ADMIN", "", "tenant-b", "Tenant B"],
        ["dave@example.com", "FALSE", "ADMIN", "", "tenant-a", "Tenant A"],
        ["alice@example.com", "yes", "USER", "", "", ""],
    ])
    return fake


@pytest.fixture
def tenant_a():
    return TenantContext(tenant_key="tenant-a", tenant_name="Tenant A", role=ROLE_ADMIN, person_id="p1")


@pytest.fixture
def tenant_b():
    return TenantContext(tenant_key="tenant-b", tenant_name="Tenant B", role=ROLE_ADMIN)


@pytest.fixture
def tenant_a_user():
    return TenantContext(tenant_key="tenant-a", tenant_name="Tenant A", role=ROLE_USER, person_id="p2")


# ── FastAPI app fixtures ──

@pytest.fixture
def app_with_sheets(sheets):
    """FastAPI app with the spreadsheet dependency pointed at the fake."""
    from app.main import app

    async def override_get_sheets():
        yield sheets.session()

    app.dependency_overrides[get_sheets] = override_get_sheets
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_sheets):
    """Unauthenticated TestClient."""
    return TestClient(app_with_sheets, raise_server_exceptions=False)


@pytest.fixture
def make_client(app_with_sheets):
    """Factory: TestClient authenticated as `email` via the forward-auth header."""
    def _factory(email):
        return TestClient(app_with_sheets, raise_server_exceptions=False,
                          headers={"X-Forwarded-User": email})
    return _factory


@pytest.fixture
def admin_client(make_client):
    return make_client("alice@example.com")


@pytest.fixture
def user_client(make_client):
    return make_client("bob@example.com")
