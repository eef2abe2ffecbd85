"""People directory and per-person attribute records."""
import asyncio
import logging
import re
import uuid
from datetime import date, datetime

from .errors import InvalidRequest, RecordNotFound
from .family import read_field
from .records import (
    create_record,
    delete_record_by_id,
    get_record_by_id,
    list_records,
    to_cell,
    update_record_by_id,
)
from .sheets import SheetsBackend
from .tenancy import assert_tenant_scoped_value, tenant_key_of

logger = logging.getLogger(__name__)

PEOPLE_TAB = "People"
PERSON_ID_COLUMN = "person_id"
PERSON_ATTRIBUTES_TAB = "PersonAttributes"
ATTRIBUTE_ID_COLUMN = "attribute_id"

PERSON_UPDATE_FIELDS = ("display_name", "birth_date", "phones", "address", "hobbies", "notes")

_TRUE_VALUES = {"true", "yes", "1"}
_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d %B %Y", "%B %d, %Y", "%d %b %Y", "%b %d, %Y")


def parse_bool(value: str | None) -> bool:
    return bool(value) and value.strip().lower() in _TRUE_VALUES


def to_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in re.split(r"[,;|]", value) if item.strip()]


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def normalize_date(value: str | None) -> str:
    """ISO `YYYY-MM-DD` or "" when unparseable."""
    raw = (value or "").strip()
    if not raw:
        return ""
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return date.fromisoformat(raw[:10]).isoformat()
    except ValueError:
        return ""


def build_person_id(full_name: str, birth_date: str) -> str:
    """`YYYYMMDD-name-slug`, or "" when either part is missing."""
    name_slug = slugify(full_name or "")
    born = normalize_date(birth_date).replace("-", "")
    if not name_slug or not born:
        return ""
    return f"{born}-{name_slug}"


def row_to_person(record: dict) -> dict:
    return {
        "person_id": read_field(record, "person_id"),
        "display_name": read_field(record, "display_name"),
        "birth_date": read_field(record, "birth_date"),
        "phones": read_field(record, "phones"),
        "address": read_field(record, "address"),
        "hobbies": read_field(record, "hobbies"),
        "notes": read_field(record, "notes"),
        "photo_file_id": read_field(record, "photo_file_id"),
        "is_pinned": parse_bool(read_field(record, "is_pinned")) or parse_bool(read_field(record, "is_pinned_viewer")),
        "relationships": to_list(read_field(record, "relationships")),
    }


# ── People ──

async def get_people(client: SheetsBackend, tenant) -> list[dict]:
    people = [row_to_person(r) for r in await list_records(client, PEOPLE_TAB, tenant)]
    people = [p for p in people if p["person_id"]]
    return sorted(people, key=lambda p: p["display_name"].lower())


async def get_person_by_id(client: SheetsBackend, tenant, person_id: str) -> dict:
    record = await get_record_by_id(client, PEOPLE_TAB, person_id, PERSON_ID_COLUMN, tenant)
    return row_to_person(record)


async def create_person(client: SheetsBackend, tenant, data: dict) -> dict:
    """Create a person. The id is derived from name + birth date when both are known."""
    person_id = (data.get("person_id") or "").strip()
    if not person_id:
        person_id = build_person_id(data.get("display_name", ""), data.get("birth_date", "")) or uuid.uuid4().hex[:12]
    try:
        await get_record_by_id(client, PEOPLE_TAB, person_id, PERSON_ID_COLUMN, tenant)
    except RecordNotFound:
        pass
    else:
        raise InvalidRequest(f"person {person_id} already exists")
    payload = {k: to_cell(v) for k, v in data.items() if v is not None}
    payload["person_id"] = person_id
    if payload.get("birth_date"):
        payload["birth_date"] = normalize_date(payload["birth_date"]) or payload["birth_date"]
    record = await create_record(client, PEOPLE_TAB, payload, tenant)
    logger.info("Created person %s in %s", person_id, tenant_key_of(tenant))
    return row_to_person(record)


async def update_person(client: SheetsBackend, tenant, person_id: str, updates: dict) -> dict:
    payload = {k: to_cell(v) for k, v in updates.items() if k in PERSON_UPDATE_FIELDS and v is not None}
    record = await update_record_by_id(client, PEOPLE_TAB, person_id, payload, PERSON_ID_COLUMN, tenant)
    return row_to_person(record)


# ── Person attributes ──

def row_to_attribute(record: dict) -> dict:
    sort_order = read_field(record, "sort_order")
    return {
        "attribute_id": read_field(record, "attribute_id"),
        "tenant_key": read_field(record, "tenant_key"),
        "person_id": read_field(record, "person_id"),
        "attribute_type": read_field(record, "attribute_type").lower(),
        "value_text": read_field(record, "value_text"),
        "value_json": read_field(record, "value_json"),
        "label": read_field(record, "label"),
        "is_primary": parse_bool(read_field(record, "is_primary")),
        "sort_order": int(sort_order) if sort_order.lstrip("-").isdigit() else 0,
        "start_date": read_field(record, "start_date"),
        "end_date": read_field(record, "end_date"),
        "visibility": read_field(record, "visibility").lower() or "family",
        "notes": read_field(record, "notes"),
    }


def _attribute_payload(data: dict) -> dict:
    payload = {}
    for key, value in data.items():
        if value is None:
            continue
        if key in ("attribute_type", "visibility"):
            value = str(value).lower()
        payload[key] = to_cell(value)
    return payload


async def list_person_attributes(client: SheetsBackend, tenant, person_id: str) -> list[dict]:
    attributes = [row_to_attribute(r) for r in await list_records(client, PERSON_ATTRIBUTES_TAB, tenant)]
    attributes = [a for a in attributes if a["person_id"] == person_id and a["attribute_id"]]
    return sorted(attributes, key=lambda a: (a["attribute_type"], a["sort_order"]))


async def _clear_primary(client: SheetsBackend, tenant, person_id: str, attribute_type: str,
                         keep_attribute_id: str = "") -> list[str]:
    """Unset is_primary on the person's other attributes of this type. Returns failures."""
    current = await list_person_attributes(client, tenant, person_id)
    targets = [a["attribute_id"] for a in current
               if a["attribute_type"] == attribute_type and a["is_primary"]
               and a["attribute_id"] != keep_attribute_id]
    results = await asyncio.gather(*[
        update_record_by_id(client, PERSON_ATTRIBUTES_TAB, attribute_id, {"is_primary": "FALSE"},
                            ATTRIBUTE_ID_COLUMN, tenant)
        for attribute_id in targets
    ], return_exceptions=True)
    errors = []
    for attribute_id, result in zip(targets, results):
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        if isinstance(result, Exception):
            logger.warning("Could not clear primary flag on %s: %s", attribute_id, result)
            errors.append(f"clear primary {attribute_id}: {result}")
    return errors


async def create_person_attribute(client: SheetsBackend, tenant, person_id: str, data: dict) -> dict:
    await get_person_by_id(client, tenant, person_id)
    tenant_key = tenant_key_of(tenant)
    attribute_type = str(data.get("attribute_type", "")).lower()
    errors = []
    if data.get("is_primary"):
        errors = await _clear_primary(client, tenant, person_id, attribute_type)
    payload = _attribute_payload(data)
    payload.update({
        "attribute_id": f"{tenant_key}-{person_id}-{slugify(attribute_type) or 'attr'}-{uuid.uuid4().hex[:8]}",
        "tenant_key": tenant_key,
        "person_id": person_id,
    })
    record = await create_record(client, PERSON_ATTRIBUTES_TAB, payload, tenant)
    attribute = row_to_attribute(record)
    attribute["errors"] = errors
    return attribute


async def update_person_attribute(client: SheetsBackend, tenant, person_id: str, attribute_id: str,
                                  data: dict) -> dict:
    await get_person_by_id(client, tenant, person_id)
    existing = next((a for a in await list_person_attributes(client, tenant, person_id)
                     if a["attribute_id"] == attribute_id), None)
    if existing is None:
        raise RecordNotFound(f"attribute {attribute_id} not found")
    assert_tenant_scoped_value(existing["tenant_key"], tenant_key_of(tenant))

    errors = []
    if data.get("is_primary"):
        next_type = str(data.get("attribute_type") or existing["attribute_type"]).lower()
        errors = await _clear_primary(client, tenant, person_id, next_type, keep_attribute_id=attribute_id)
    payload = _attribute_payload({k: v for k, v in data.items() if k not in ("attribute_id", "person_id", "tenant_key")})
    record = await update_record_by_id(client, PERSON_ATTRIBUTES_TAB, attribute_id, payload,
                                       ATTRIBUTE_ID_COLUMN, tenant)
    attribute = row_to_attribute(record)
    attribute["errors"] = errors
    return attribute


async def delete_person_attribute(client: SheetsBackend, tenant, person_id: str, attribute_id: str) -> bool:
    existing = next((a for a in await list_person_attributes(client, tenant, person_id)
                     if a["attribute_id"] == attribute_id), None)
    if existing is None:
        return False
    return await delete_record_by_id(client, PERSON_ATTRIBUTES_TAB, attribute_id, ATTRIBUTE_ID_COLUMN, tenant)
