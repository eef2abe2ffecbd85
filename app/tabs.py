"""Tab resolution: logical table name + tenant key -> physical tab."""
import logging
import os
import re

from .errors import TabNotFound
from .sheets import SheetsBackend, Tab

logger = logging.getLogger(__name__)

DEFAULT_TENANT_KEY = "default"
DEFAULT_TENANT_NAME = os.environ.get("DEFAULT_TENANT_NAME", "The Eternal Family Link")
TENANT_SEPARATOR = "__"

_INVALID_TENANT_CHARS = re.compile(r"[^a-z0-9_-]+")


def normalize_tenant_key(value: str | None) -> str:
    """Lowercase, restrict to [a-z0-9_-]; empty or missing means the default tenant."""
    raw = (value or "").strip().lower()
    cleaned = _INVALID_TENANT_CHARS.sub("-", raw).strip("-")
    return cleaned or DEFAULT_TENANT_KEY


def tab_candidates(table: str, tenant_key: str | None = None) -> list[str]:
    """Ordered physical tab names to try: `{tenant}__{table}` then bare `{table}`.

    The default tenant only ever uses the bare tab.
    """
    table = table.strip()
    tenant = normalize_tenant_key(tenant_key)
    if tenant == DEFAULT_TENANT_KEY:
        return [table]
    return [f"{tenant}{TENANT_SEPARATOR}{table}", table]


def match_tab(tabs: list[Tab], candidates: list[str]) -> Tab | None:
    by_title = {}
    for tab in tabs:
        by_title.setdefault(tab.title.strip().lower(), tab)
    for candidate in candidates:
        hit = by_title.get(candidate.lower())
        if hit is not None:
            return hit
    return None


async def resolve_tab(client: SheetsBackend, table: str, tenant_key: str | None = None) -> Tab:
    """Resolve against the live tab list. Raises TabNotFound."""
    candidates = tab_candidates(table, tenant_key)
    tab = match_tab(await client.list_tabs(), candidates)
    if tab is None:
        logger.warning("No tab for table %r (tried %s)", table, ", ".join(candidates))
        raise TabNotFound(f"no tab found for {table!r} (tried {', '.join(candidates)})")
    return tab


async def list_tables(client: SheetsBackend) -> list[str]:
    return [tab.title for tab in await client.list_tabs()]
