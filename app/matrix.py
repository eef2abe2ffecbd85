"""Whole-tab grid reads and single-row writes."""
import logging
from dataclasses import dataclass, field

from .sheets import LAST_COLUMN, SheetsBackend, Tab, column_letter

logger = logging.getLogger(__name__)


def normalize_header(header: str) -> str:
    return header.strip().lower()


def build_header_index(headers: list[str]) -> dict[str, int]:
    """Normalized header -> column position. First occurrence wins."""
    index: dict[str, int] = {}
    for i, header in enumerate(headers):
        key = normalize_header(header)
        if key and key not in index:
            index[key] = i
    return index


@dataclass
class SheetMatrix:
    """A snapshot of one tab. Never cached across calls."""
    tab: Tab
    headers: list[str]
    rows: list[list[str]]
    index: dict[str, int] = field(init=False)

    def __post_init__(self):
        self.index = build_header_index(self.headers)

    def has_column(self, key: str) -> bool:
        return normalize_header(key) in self.index

    def header_for(self, key: str) -> str | None:
        idx = self.index.get(normalize_header(key))
        return None if idx is None else self.headers[idx]

    def padded(self, row: list[str]) -> list[str]:
        return [row[i] if i < len(row) else "" for i in range(len(self.headers))]

    def cell(self, row: list[str], key: str) -> str:
        idx = self.index.get(normalize_header(key))
        if idx is None or idx >= len(row):
            return ""
        return row[idx]

    def set_cell(self, row: list[str], key: str, value: str) -> bool:
        idx = self.index.get(normalize_header(key))
        if idx is None:
            return False
        row[idx] = value
        return True

    def to_record(self, row: list[str]) -> dict[str, str]:
        """Header-keyed view through the same index used for writes."""
        padded = self.padded(row)
        return {self.headers[i]: padded[i] for i in sorted(self.index.values())}

    @staticmethod
    def sheet_row_number(row_index: int) -> int:
        """Data row position (0-based, header excluded) -> 1-based sheet row."""
        return row_index + 2

    @property
    def last_column(self) -> str:
        return column_letter(max(len(self.headers), 1))


async def read_matrix(client: SheetsBackend, tab: Tab) -> SheetMatrix:
    grid = await client.get_values(tab.title, f"A1:{LAST_COLUMN}")
    if not grid:
        return SheetMatrix(tab=tab, headers=[], rows=[])
    headers, *rows = grid
    return SheetMatrix(tab=tab, headers=list(headers), rows=[list(r) for r in rows])


async def read_row(client: SheetsBackend, matrix: SheetMatrix, row_index: int) -> list[str]:
    n = matrix.sheet_row_number(row_index)
    grid = await client.get_values(matrix.tab.title, f"A{n}:{matrix.last_column}{n}")
    return matrix.padded(grid[0] if grid else [])


async def write_row(client: SheetsBackend, matrix: SheetMatrix, row_index: int, values: list[str]):
    """Rewrite one row's full cell range."""
    n = matrix.sheet_row_number(row_index)
    await client.update_values(matrix.tab.title, f"A{n}:{matrix.last_column}{n}", [matrix.padded(values)])


async def append_row(client: SheetsBackend, matrix: SheetMatrix, values: list[str]):
    await client.append_row(matrix.tab.title, matrix.padded(values))


async def delete_row(client: SheetsBackend, matrix: SheetMatrix, row_index: int):
    """Structural delete; every later row shifts up by one."""
    start = row_index + 1
    await client.delete_rows(matrix.tab.sheet_id, start, start + 1)
