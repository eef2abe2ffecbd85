"""Relationship graph: parent/child edges, spouse pairings and their reconciliation."""
import asyncio
import hashlib
import logging
from dataclasses import asdict, dataclass, field

from .errors import InvalidRequest, SpouseUnavailable
from .records import delete_record_by_id, list_records, upsert_record
from .sheets import SheetsBackend
from .tenancy import tenant_key_of

logger = logging.getLogger(__name__)

RELATIONSHIPS_TAB = "Relationships"
FAMILY_UNITS_TAB = "FamilyUnits"
REL_ID_COLUMN = "rel_id"
FAMILY_UNIT_ID_COLUMN = "family_unit_id"
PARENT = "parent"

_KEY_SEPARATOR = "\x1f"


# ── Key derivation ──

def derive_key(prefix: str, *parts: str) -> str:
    """Deterministic id from a canonical tuple. Same parts, same id."""
    canonical = _KEY_SEPARATOR.join(p.strip() for p in parts)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:24]
    return f"{prefix}-{digest}"


@dataclass(frozen=True)
class EdgeKey:
    tenant_key: str
    from_person_id: str
    to_person_id: str
    rel_type: str = PARENT

    @property
    def id(self) -> str:
        return derive_key("rel", self.tenant_key, self.from_person_id,
                          self.to_person_id, self.rel_type.lower())

    def payload(self) -> dict:
        return {
            REL_ID_COLUMN: self.id,
            "from_person_id": self.from_person_id,
            "to_person_id": self.to_person_id,
            "rel_type": self.rel_type,
            "tenant_key": self.tenant_key,
        }


@dataclass(frozen=True)
class PairKey:
    """Undirected: partners are stored sorted, so argument order never matters."""
    tenant_key: str
    partner1_person_id: str
    partner2_person_id: str

    @classmethod
    def of(cls, tenant_key: str, person_a: str, person_b: str) -> "PairKey":
        first, second = sorted((person_a, person_b))
        return cls(tenant_key, first, second)

    @property
    def id(self) -> str:
        return derive_key("fu", self.tenant_key, self.partner1_person_id, self.partner2_person_id)

    def payload(self) -> dict:
        return {
            FAMILY_UNIT_ID_COLUMN: self.id,
            "partner1_person_id": self.partner1_person_id,
            "partner2_person_id": self.partner2_person_id,
            "tenant_key": self.tenant_key,
        }


# ── Reads ──

def read_field(record: dict, *keys: str) -> str:
    """First non-empty value among `keys`, matched case-insensitively."""
    lowered = {k.strip().lower(): v for k, v in record.items()}
    for key in keys:
        value = lowered.get(key.lower())
        if value and value.strip():
            return value.strip()
    return ""


def _edge_from_record(record: dict, tenant_key: str) -> dict:
    return {
        "id": read_field(record, "rel_id", "relationship_id", "id"),
        "tenant_key": tenant_key_of(read_field(record, "tenant_key") or tenant_key),
        "from_person_id": read_field(record, "from_person_id", "source_person_id", "person_id"),
        "to_person_id": read_field(record, "to_person_id", "target_person_id", "related_person_id"),
        "rel_type": read_field(record, "rel_type", "relationship_type", "type") or "related",
    }


def _unit_from_record(record: dict, tenant_key: str) -> dict:
    return {
        "id": read_field(record, "family_unit_id", "id"),
        "tenant_key": tenant_key_of(read_field(record, "tenant_key") or tenant_key),
        "partner1_person_id": read_field(record, "partner1_person_id", "partner_1_person_id", "parent1_person_id"),
        "partner2_person_id": read_field(record, "partner2_person_id", "partner_2_person_id", "parent2_person_id"),
    }


async def _read_edges(client: SheetsBackend, tenant_key: str) -> list[dict]:
    edges = [_edge_from_record(r, tenant_key) for r in await list_records(client, RELATIONSHIPS_TAB, tenant_key)]
    return [e for e in edges
            if e["from_person_id"] and e["to_person_id"] and e["tenant_key"] == tenant_key]


async def _read_units(client: SheetsBackend, tenant_key: str) -> list[dict]:
    units = [_unit_from_record(r, tenant_key) for r in await list_records(client, FAMILY_UNITS_TAB, tenant_key)]
    return [u for u in units
            if u["partner1_person_id"] and u["partner2_person_id"] and u["tenant_key"] == tenant_key]


async def get_relationships(client: SheetsBackend, tenant) -> list[dict]:
    tenant_key = tenant_key_of(tenant)
    edges = await _read_edges(client, tenant_key)
    for edge in edges:
        if not edge["id"]:
            edge["id"] = EdgeKey(tenant_key, edge["from_person_id"], edge["to_person_id"], edge["rel_type"]).id
    return edges


async def get_family_units(client: SheetsBackend, tenant) -> list[dict]:
    tenant_key = tenant_key_of(tenant)
    units = await _read_units(client, tenant_key)
    for unit in units:
        if not unit["id"]:
            unit["id"] = PairKey.of(tenant_key, unit["partner1_person_id"], unit["partner2_person_id"]).id
    return units


def get_spouse_of(family_units: list[dict], person_id: str) -> str | None:
    for unit in family_units:
        if unit["partner1_person_id"] == person_id:
            return unit["partner2_person_id"]
        if unit["partner2_person_id"] == person_id:
            return unit["partner1_person_id"]
    return None


async def suggest_co_parent(client: SheetsBackend, tenant, parent_id: str) -> str | None:
    """Default for an empty second-parent slot: the chosen parent's current spouse."""
    return get_spouse_of(await get_family_units(client, tenant), parent_id.strip())


def find_spouse_conflict(family_units: list[dict], person_id: str, spouse_id: str) -> str | None:
    """Partner id `spouse_id` is already paired with, unless that partner is `person_id`."""
    for unit in family_units:
        partners = (unit["partner1_person_id"], unit["partner2_person_id"])
        if spouse_id not in partners or person_id in partners:
            continue
        return partners[1] if partners[0] == spouse_id else partners[0]
    return None


# ── Reconciliation ──

@dataclass
class ReconcileOutcome:
    person_id: str
    parent_ids: list[str]
    child_ids: list[str]
    spouse_id: str | None = None
    family_unit_id: str | None = None
    edges_created: int = 0
    edges_updated: int = 0
    edges_deleted: int = 0
    family_units_deleted: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["ok"] = not self.errors
        return data


def _distinct(ids: list[str], exclude: str) -> list[str]:
    seen = []
    for raw in ids:
        pid = (raw or "").strip()
        if pid and pid != exclude and pid not in seen:
            seen.append(pid)
    return seen


async def _fan_out(label: str, coros: list) -> tuple[list, list[str]]:
    """Run sub-calls concurrently. Failures are collected, never rolled back."""
    results = await asyncio.gather(*coros, return_exceptions=True)
    done, errors = [], []
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        if isinstance(result, Exception):
            logger.warning("%s failed: %s", label, result)
            errors.append(f"{label}: {result}")
        else:
            done.append(result)
    return done, errors


async def reconcile_relationships(client: SheetsBackend, tenant, person_id: str,
                                  parent_ids: list[str], child_ids: list[str],
                                  spouse_id: str | None = "") -> ReconcileOutcome:
    """Make the stored edges and family unit of `person_id` match the desired ones.

    Idempotent. Both tables are read and the spouse conflict decided before
    any write, so SpouseUnavailable never leaves family-unit changes behind;
    edge changes are independent of it and still commit.
    """
    tenant_key = tenant_key_of(tenant)
    person_id = (person_id or "").strip()
    if not person_id:
        raise InvalidRequest("person_id is required")
    parents = _distinct(parent_ids, person_id)
    children = _distinct(child_ids, person_id)
    spouse = (spouse_id or "").strip()
    if spouse == person_id:
        spouse = ""

    desired = [EdgeKey(tenant_key, p, person_id) for p in parents]
    desired += [EdgeKey(tenant_key, person_id, c) for c in children]
    desired_ids = {edge.id for edge in desired}

    edges, units = await asyncio.gather(
        _read_edges(client, tenant_key),
        _read_units(client, tenant_key),
    )
    conflict = find_spouse_conflict(units, person_id, spouse) if spouse else None

    outcome = ReconcileOutcome(person_id=person_id, parent_ids=parents, child_ids=children,
                               spouse_id=spouse or None)

    stale_edges = [
        e["id"] for e in edges
        if e["id"] and e["rel_type"].lower() == PARENT
        and person_id in (e["from_person_id"], e["to_person_id"])
        and e["id"] not in desired_ids
    ]
    deleted, errors = await _fan_out("delete edge", [
        delete_record_by_id(client, RELATIONSHIPS_TAB, rel_id, REL_ID_COLUMN, tenant_key)
        for rel_id in stale_edges
    ])
    outcome.edges_deleted = sum(1 for d in deleted if d)
    outcome.errors += errors

    upserted, errors = await _fan_out("upsert edge", [
        upsert_record(client, RELATIONSHIPS_TAB, edge.id, edge.payload(), REL_ID_COLUMN, tenant_key)
        for edge in desired
    ])
    outcome.edges_created = sum(1 for _, created in upserted if created)
    outcome.edges_updated = sum(1 for _, created in upserted if not created)
    outcome.errors += errors

    if conflict is not None:
        logger.info("Spouse %s of %s unavailable (paired with %s)", spouse, person_id, conflict)
        raise SpouseUnavailable(spouse, conflict)

    keep = PairKey.of(tenant_key, person_id, spouse) if spouse else None
    stale_units = [
        u["id"] for u in units
        if u["id"] and person_id in (u["partner1_person_id"], u["partner2_person_id"])
        and (keep is None or u["id"] != keep.id)
    ]
    deleted, errors = await _fan_out("delete family unit", [
        delete_record_by_id(client, FAMILY_UNITS_TAB, unit_id, FAMILY_UNIT_ID_COLUMN, tenant_key)
        for unit_id in stale_units
    ])
    outcome.family_units_deleted = sum(1 for d in deleted if d)
    outcome.errors += errors

    if keep is not None:
        _, errors = await _fan_out("upsert family unit", [
            upsert_record(client, FAMILY_UNITS_TAB, keep.id, keep.payload(), FAMILY_UNIT_ID_COLUMN, tenant_key)
        ])
        outcome.errors += errors
        outcome.family_unit_id = keep.id

    logger.info(
        "Reconciled %s in %s: +%d ~%d -%d edges, -%d family units, %d errors",
        person_id, tenant_key, outcome.edges_created, outcome.edges_updated,
        outcome.edges_deleted, outcome.family_units_deleted, len(outcome.errors),
    )
    return outcome
