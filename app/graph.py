import asyncio

from .family import get_family_units, get_relationships
from .people import get_people
from .sheets import SheetsBackend
from .tenancy import tenant_key_of


async def build_tree(client: SheetsBackend, tenant) -> dict:
    """People, parent edges and family units of one tenant, plus a node/edge view."""
    tenant_key = tenant_key_of(tenant)
    people, rels, units = await asyncio.gather(
        get_people(client, tenant_key),
        get_relationships(client, tenant_key),
        get_family_units(client, tenant_key),
    )
    nodes = [{"data": {"id": p["person_id"], "label": p["display_name"]}} for p in people]
    edges = [{
        "data": {"id": r["id"], "source": r["from_person_id"], "target": r["to_person_id"], "type": r["rel_type"]}
    } for r in rels]
    edges += [{
        "data": {"id": u["id"], "source": u["partner1_person_id"], "target": u["partner2_person_id"], "type": "spouse"}
    } for u in units]
    return {
        "tenant_key": tenant_key,
        "people_count": len(people),
        "relationships_count": len(rels),
        "family_units_count": len(units),
        "people": people,
        "relationships": rels,
        "family_units": units,
        "nodes": nodes,
        "edges": edges,
    }
