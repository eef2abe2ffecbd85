"""Spreadsheet backend: Google Sheets REST client over httpx."""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from .errors import RemoteFailure, RemoteTimeout

logger = logging.getLogger(__name__)

SHEET_ID = os.environ.get("SHEET_ID", "")
GOOGLE_ACCESS_TOKEN = os.environ.get("GOOGLE_ACCESS_TOKEN", "")
SHEETS_API_BASE = os.environ.get("SHEETS_API_BASE", "https://sheets.googleapis.com/v4")
SHEETS_TIMEOUT_SECONDS = float(os.environ.get("SHEETS_TIMEOUT_SECONDS", "10"))

LAST_COLUMN = "ZZ"


@dataclass(frozen=True)
class Tab:
    title: str
    sheet_id: int


def column_letter(index: int) -> str:
    """1-based column index -> A1 letters (1 -> A, 27 -> AA)."""
    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def a1_range(title: str, cells: str) -> str:
    escaped = title.replace("'", "''")
    return f"'{escaped}'!{cells}"


class SheetsBackend(ABC):
    """Operations the record store needs from a spreadsheet document.

    Subclasses implement the remote calls. Row indexes for `delete_rows`
    are 0-based and include the header row, matching the Sheets API.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def write_lock(self, title: str) -> asyncio.Lock:
        """Per-tab lock held across read -> re-resolve -> write."""
        key = title.lower()
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @abstractmethod
    async def list_tabs(self) -> list[Tab]:
        ...

    @abstractmethod
    async def get_values(self, title: str, cells: str = f"A1:{LAST_COLUMN}") -> list[list[str]]:
        ...

    @abstractmethod
    async def update_values(self, title: str, cells: str, rows: list[list[str]]):
        ...

    @abstractmethod
    async def append_row(self, title: str, row: list[str]):
        ...

    @abstractmethod
    async def delete_rows(self, sheet_id: int, start_index: int, end_index: int):
        ...

    async def aclose(self):
        pass


class SheetsClient(SheetsBackend):
    def __init__(self, spreadsheet_id: str, token: str, base_url: str = SHEETS_API_BASE,
                 timeout: float = SHEETS_TIMEOUT_SECONDS, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__()
        self.spreadsheet_id = spreadsheet_id
        self._prefix = f"/spreadsheets/{spreadsheet_id}"
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "SheetsClient":
        if not SHEET_ID:
            raise RuntimeError("missing SHEET_ID")
        return cls(SHEET_ID, GOOGLE_ACCESS_TOKEN)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = await self._http.request(method, self._prefix + path, **kwargs)
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("Sheets %s %s timed out", method, path)
            raise RemoteTimeout(f"sheets request timed out: {method} {path}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("Sheets %s %s failed with %d", method, path, status)
            raise RemoteFailure(f"sheets request failed with {status}", remote_status=status) from e
        except httpx.HTTPError as e:
            raise RemoteFailure(f"sheets request failed: {e}") from e
        if not resp.content:
            return {}
        return resp.json()

    async def list_tabs(self) -> list[Tab]:
        data = await self._request("GET", "", params={"fields": "sheets.properties(sheetId,title)"})
        tabs = []
        for sheet in data.get("sheets") or []:
            props = sheet.get("properties") or {}
            if props.get("title"):
                tabs.append(Tab(title=props["title"], sheet_id=int(props.get("sheetId", 0))))
        return tabs

    async def get_values(self, title: str, cells: str = f"A1:{LAST_COLUMN}") -> list[list[str]]:
        rng = quote(a1_range(title, cells), safe="")
        data = await self._request("GET", f"/values/{rng}")
        return [[str(cell) for cell in row] for row in data.get("values") or []]

    async def update_values(self, title: str, cells: str, rows: list[list[str]]):
        rng = a1_range(title, cells)
        await self._request(
            "PUT", f"/values/{quote(rng, safe='')}",
            params={"valueInputOption": "RAW"},
            json={"range": rng, "majorDimension": "ROWS", "values": rows},
        )

    async def append_row(self, title: str, row: list[str]):
        rng = quote(a1_range(title, f"A1:{LAST_COLUMN}"), safe="")
        await self._request(
            "POST", f"/values/{rng}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"majorDimension": "ROWS", "values": [row]},
        )

    async def delete_rows(self, sheet_id: int, start_index: int, end_index: int):
        await self._request("POST", ":batchUpdate", json={
            "requests": [{
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": start_index,
                        "endIndex": end_index,
                    }
                }
            }]
        })

    async def aclose(self):
        await self._http.aclose()


async def get_sheets():
    """FastAPI dependency: one client (and one set of tab write locks) per request."""
    client = SheetsClient.from_env()
    try:
        yield client
    finally:
        await client.aclose()
