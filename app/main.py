from typing import Annotated

from fastapi import Depends, FastAPI, Path, Query, Request
from fastapi.responses import JSONResponse

from . import auth, deadline, family, graph, people, records, schemas, tabs
from .auth import can_edit_person, get_caller_email, get_tenant_context, require_tenant_admin
from .deadline import within_deadline
from .errors import Forbidden, RecordNotFound, StoreError, Unauthenticated
from .sheets import SheetsBackend, get_sheets
from .tenancy import TenantContext

app = FastAPI(title="Family Directory API")

Table = Annotated[str, Path(pattern=schemas.TABLE_NAME_PATTERN)]
IdColumn = Annotated[str | None, Query(alias="idColumn", pattern=schemas.TABLE_NAME_PATTERN)]


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.middleware("http")
async def request_deadline(request: Request, call_next):
    deadline.start()
    return await call_next(request)


@app.get("/health")
def health():
    return {"ok": True}


# ── Generic tables ──

@app.get("/api/tables")
async def list_tables(email: str | None = Depends(get_caller_email),
                      client: SheetsBackend = Depends(get_sheets)):
    if not email:
        raise Unauthenticated("authentication required")
    return {"tables": await within_deadline(tabs.list_tables(client))}


@app.get("/api/t/{tenant_key}/tables/{table}")
async def list_table_records(table: Table,
                             ctx: TenantContext = Depends(get_tenant_context),
                             client: SheetsBackend = Depends(get_sheets)):
    rows = await within_deadline(records.list_records(client, table, ctx))
    return {"table": table, "records": rows}


@app.post("/api/t/{tenant_key}/tables/{table}", status_code=201)
async def create_table_record(body: schemas.RecordIn, table: Table,
                              ctx: TenantContext = Depends(require_tenant_admin),
                              client: SheetsBackend = Depends(get_sheets)):
    record = await within_deadline(records.create_record(client, table, body.record, ctx))
    return {"table": table, "record": record}


@app.get("/api/t/{tenant_key}/tables/{table}/{record_id}")
async def get_table_record(record_id: str, table: Table, id_column: IdColumn = None,
                           ctx: TenantContext = Depends(get_tenant_context),
                           client: SheetsBackend = Depends(get_sheets)):
    record = await within_deadline(records.get_record_by_id(client, table, record_id, id_column, ctx))
    return {"table": table, "record": record}


@app.patch("/api/t/{tenant_key}/tables/{table}/{record_id}")
async def update_table_record(record_id: str, body: schemas.RecordIn, table: Table,
                              id_column: IdColumn = None,
                              ctx: TenantContext = Depends(require_tenant_admin),
                              client: SheetsBackend = Depends(get_sheets)):
    record = await within_deadline(
        records.update_record_by_id(client, table, record_id, body.record, id_column, ctx))
    return {"table": table, "record": record}


@app.delete("/api/t/{tenant_key}/tables/{table}/{record_id}")
async def delete_table_record(record_id: str, table: Table, id_column: IdColumn = None,
                              ctx: TenantContext = Depends(require_tenant_admin),
                              client: SheetsBackend = Depends(get_sheets)):
    deleted = await within_deadline(records.delete_record_by_id(client, table, record_id, id_column, ctx))
    if not deleted:
        raise RecordNotFound(f"{table}/{record_id} not found")
    return {"table": table, "deleted": True}


# ── People ──

@app.get("/api/t/{tenant_key}/people")
async def list_people(ctx: TenantContext = Depends(get_tenant_context),
                      client: SheetsBackend = Depends(get_sheets)):
    return {"tenant_key": ctx.tenant_key, "people": await within_deadline(people.get_people(client, ctx))}


@app.post("/api/t/{tenant_key}/people", status_code=201)
async def add_person(body: schemas.PersonCreate, ctx: TenantContext = Depends(require_tenant_admin),
                     client: SheetsBackend = Depends(get_sheets)):
    person = await within_deadline(people.create_person(client, ctx, body.model_dump()))
    return {"tenant_key": ctx.tenant_key, "person": schemas.PersonOut(**person).model_dump()}


@app.get("/api/t/{tenant_key}/people/{person_id}")
async def get_person(person_id: str, ctx: TenantContext = Depends(get_tenant_context),
                     client: SheetsBackend = Depends(get_sheets)):
    person = await within_deadline(people.get_person_by_id(client, ctx, person_id))
    return {"tenant_key": ctx.tenant_key, "person": person}


@app.post("/api/t/{tenant_key}/people/{person_id}")
async def edit_person(person_id: str, body: schemas.PersonUpdate,
                      ctx: TenantContext = Depends(get_tenant_context),
                      client: SheetsBackend = Depends(get_sheets)):
    if not can_edit_person(ctx, person_id):
        raise Forbidden("cannot edit this person")
    person = await within_deadline(
        people.update_person(client, ctx, person_id, body.model_dump(exclude_none=True)))
    return {"tenant_key": ctx.tenant_key, "person": person}


@app.get("/api/t/{tenant_key}/people/{person_id}/attributes")
async def list_attributes(person_id: str, ctx: TenantContext = Depends(get_tenant_context),
                          client: SheetsBackend = Depends(get_sheets)):
    async def load():
        await people.get_person_by_id(client, ctx, person_id)
        return await people.list_person_attributes(client, ctx, person_id)
    attributes = await within_deadline(load())
    return {"tenant_key": ctx.tenant_key, "person_id": person_id, "attributes": attributes}


@app.post("/api/t/{tenant_key}/people/{person_id}/attributes", status_code=201)
async def add_attribute(person_id: str, body: schemas.AttributeCreate,
                        ctx: TenantContext = Depends(get_tenant_context),
                        client: SheetsBackend = Depends(get_sheets)):
    if not can_edit_person(ctx, person_id):
        raise Forbidden("cannot edit this person")
    attribute = await within_deadline(
        people.create_person_attribute(client, ctx, person_id, body.model_dump()))
    return {"tenant_key": ctx.tenant_key, "person_id": person_id, "attribute": attribute}


@app.patch("/api/t/{tenant_key}/people/{person_id}/attributes/{attribute_id}")
async def edit_attribute(person_id: str, attribute_id: str, body: schemas.AttributeUpdate,
                         ctx: TenantContext = Depends(get_tenant_context),
                         client: SheetsBackend = Depends(get_sheets)):
    if not can_edit_person(ctx, person_id):
        raise Forbidden("cannot edit this person")
    attribute = await within_deadline(people.update_person_attribute(
        client, ctx, person_id, attribute_id, body.model_dump(exclude_none=True)))
    return {"tenant_key": ctx.tenant_key, "person_id": person_id, "attribute": attribute}


@app.delete("/api/t/{tenant_key}/people/{person_id}/attributes/{attribute_id}")
async def remove_attribute(person_id: str, attribute_id: str,
                           ctx: TenantContext = Depends(get_tenant_context),
                           client: SheetsBackend = Depends(get_sheets)):
    if not can_edit_person(ctx, person_id):
        raise Forbidden("cannot edit this person")
    deleted = await within_deadline(people.delete_person_attribute(client, ctx, person_id, attribute_id))
    if not deleted:
        raise RecordNotFound(f"attribute {attribute_id} not found")
    return {"ok": True, "tenant_key": ctx.tenant_key, "person_id": person_id, "attribute_id": attribute_id}


# ── Relationships ──

@app.get("/api/t/{tenant_key}/relationships")
async def list_relationships(ctx: TenantContext = Depends(get_tenant_context),
                             client: SheetsBackend = Depends(get_sheets)):
    rels = await within_deadline(family.get_relationships(client, ctx))
    return {"tenant_key": ctx.tenant_key, "relationships": rels}


@app.get("/api/t/{tenant_key}/family-units")
async def list_family_units(ctx: TenantContext = Depends(get_tenant_context),
                            client: SheetsBackend = Depends(get_sheets)):
    units = await within_deadline(family.get_family_units(client, ctx))
    return {"tenant_key": ctx.tenant_key, "family_units": units}


@app.post("/api/t/{tenant_key}/relationships/builder")
async def reconcile(body: schemas.ReconcileIn, ctx: TenantContext = Depends(require_tenant_admin),
                    client: SheetsBackend = Depends(get_sheets)):
    outcome = await within_deadline(family.reconcile_relationships(
        client, ctx, body.person_id, body.parent_ids, body.child_ids, body.spouse_id))
    return outcome.to_dict()


@app.get("/api/t/{tenant_key}/relationships/suggest-co-parent")
async def suggest_co_parent(parent_id: str = Query(alias="parentId", min_length=1),
                            ctx: TenantContext = Depends(get_tenant_context),
                            client: SheetsBackend = Depends(get_sheets)):
    spouse = await within_deadline(family.suggest_co_parent(client, ctx, parent_id))
    return {"parent_id": parent_id, "suggested_parent_id": spouse}


@app.get("/api/t/{tenant_key}/tree")
async def get_tree(ctx: TenantContext = Depends(get_tenant_context),
                   client: SheetsBackend = Depends(get_sheets)):
    return await within_deadline(graph.build_tree(client, ctx))


@app.get("/api/t/{tenant_key}/me")
def me(ctx: TenantContext = Depends(get_tenant_context)):
    return {
        "tenant_key": ctx.tenant_key,
        "tenant_name": ctx.tenant_name,
        "role": ctx.role,
        "person_id": ctx.person_id,
        "tenants": ctx.tenants,
    }


@app.get("/api/t/{tenant_key}/user-access")
async def list_user_access(ctx: TenantContext = Depends(require_tenant_admin),
                           client: SheetsBackend = Depends(get_sheets)):
    items = await within_deadline(auth.list_tenant_access(client, ctx))
    return {"tenant_key": ctx.tenant_key, "items": items}


@app.post("/api/t/{tenant_key}/user-access")
async def upsert_user_access(body: schemas.AccessUpsert, ctx: TenantContext = Depends(require_tenant_admin),
                             client: SheetsBackend = Depends(get_sheets)):
    grant, created = await within_deadline(auth.upsert_tenant_access(
        client, ctx, body.user_email, body.role, body.person_id, body.is_enabled))
    return {"ok": True, "created": created, "access": grant}
