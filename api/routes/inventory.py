"""
api/routes/inventory.py -- Item and location CRUD endpoints.

Routes (all require a valid session token):
  GET    /api/inventory              POST /api/inventory
  PUT    /api/inventory/{item_id}    DELETE /api/inventory/{item_id}
  GET    /api/locations              POST /api/locations
  PUT    /api/locations/{loc_id}     DELETE /api/locations/{loc_id}

Each handler is a straight translation into
InventoryStore.execute_query(table, operation, params). GET supports the
filterColumn / searchValue / exactMatch query parameters; an unknown
filterColumn is a 400.

Writes are always audited with the written fields; reads only at high
verbosity.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from api.models import ItemWrite, LocationWrite, WriteResult
from audit.recorder import AuditRecorder
from auth.dependencies import get_current_identity
from auth.models import Identity
from inventory.store import InventoryStore, QueryError

router = APIRouter()


# ---------------------------------------------------------------------------
# Shared handlers -- items and locations differ only in table and body model
# ---------------------------------------------------------------------------


async def _read(
    request: Request,
    table: str,
    identity: Identity,
    filter_column: Optional[str],
    search_value: Optional[str],
    exact_match: bool,
) -> list[dict]:
    store: InventoryStore = request.app.state.store
    recorder: AuditRecorder = request.app.state.audit
    params: dict = {}
    if filter_column:
        params = {"filterColumn": filter_column, "searchValue": search_value, "exactMatch": exact_match}
    try:
        rows = await run_in_threadpool(store.execute_query, table, "READ", params)
    except QueryError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_request", "message": "Unknown filter column."},
        ) from exc
    recorder.record(f"{request.method} {request.url.path}", dict(request.query_params), identity.username, read_only=True)
    return rows


async def _create(request: Request, table: str, body: BaseModel, identity: Identity) -> WriteResult:
    store: InventoryStore = request.app.state.store
    recorder: AuditRecorder = request.app.state.audit
    if not body.model_dump().get("name"):
        raise HTTPException(status_code=422, detail={"code": "validation_error", "message": "Name is required."})
    row_id = str(uuid.uuid4())
    params = {"ID": row_id, **body.model_dump(by_alias=True, exclude_none=True)}
    await run_in_threadpool(store.execute_query, table, "CREATE", params)
    recorder.record(f"{request.method} {request.url.path}/{row_id}", params, identity.username)
    return WriteResult(id=row_id)


async def _update(request: Request, table: str, row_id: str, body: BaseModel, identity: Identity) -> WriteResult:
    store: InventoryStore = request.app.state.store
    recorder: AuditRecorder = request.app.state.audit
    changes = body.model_dump(by_alias=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail={"code": "no_changes", "message": "No fields to update."})
    params = {"ID": row_id, **changes}
    updated = await run_in_threadpool(store.execute_query, table, "UPDATE", params)
    if not updated:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Record not found."})
    recorder.record(f"{request.method} {request.url.path}", params, identity.username)
    return WriteResult(id=row_id)


async def _delete(request: Request, table: str, row_id: str, identity: Identity) -> WriteResult:
    store: InventoryStore = request.app.state.store
    recorder: AuditRecorder = request.app.state.audit
    deleted = await run_in_threadpool(store.execute_query, table, "DELETE", {"ID": row_id})
    if not deleted:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Record not found."})
    recorder.record(f"{request.method} {request.url.path}", {"ID": row_id}, identity.username)
    return WriteResult(id=row_id)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@router.get("/inventory", response_model=list[dict])
async def list_items(
    request: Request,
    filter_column: Optional[str] = Query(default=None, alias="filterColumn"),
    search_value: Optional[str] = Query(default=None, alias="searchValue"),
    exact_match: bool = Query(default=False, alias="exactMatch"),
    identity: Identity = Depends(get_current_identity),
) -> list[dict]:
    return await _read(request, "Items", identity, filter_column, search_value, exact_match)


@router.post("/inventory", response_model=WriteResult, status_code=201)
async def create_item(
    request: Request, body: ItemWrite, identity: Identity = Depends(get_current_identity)
) -> WriteResult:
    return await _create(request, "Items", body, identity)


@router.put("/inventory/{item_id}", response_model=WriteResult)
async def update_item(
    request: Request, item_id: str, body: ItemWrite, identity: Identity = Depends(get_current_identity)
) -> WriteResult:
    return await _update(request, "Items", item_id, body, identity)


@router.delete("/inventory/{item_id}", response_model=WriteResult)
async def delete_item(request: Request, item_id: str, identity: Identity = Depends(get_current_identity)) -> WriteResult:
    return await _delete(request, "Items", item_id, identity)


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


@router.get("/locations", response_model=list[dict])
async def list_locations(
    request: Request,
    filter_column: Optional[str] = Query(default=None, alias="filterColumn"),
    search_value: Optional[str] = Query(default=None, alias="searchValue"),
    exact_match: bool = Query(default=False, alias="exactMatch"),
    identity: Identity = Depends(get_current_identity),
) -> list[dict]:
    return await _read(request, "Locations", identity, filter_column, search_value, exact_match)


@router.post("/locations", response_model=WriteResult, status_code=201)
async def create_location(
    request: Request, body: LocationWrite, identity: Identity = Depends(get_current_identity)
) -> WriteResult:
    return await _create(request, "Locations", body, identity)


@router.put("/locations/{location_id}", response_model=WriteResult)
async def update_location(
    request: Request, location_id: str, body: LocationWrite, identity: Identity = Depends(get_current_identity)
) -> WriteResult:
    return await _update(request, "Locations", location_id, body, identity)


@router.delete("/locations/{location_id}", response_model=WriteResult)
async def delete_location(
    request: Request, location_id: str, identity: Identity = Depends(get_current_identity)
) -> WriteResult:
    return await _delete(request, "Locations", location_id, identity)
