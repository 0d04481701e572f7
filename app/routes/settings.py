"""
Settings Routes

Export, import and wipe of a user's journal data.
"""

import json

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from app.auth.utils import get_current_owner
from app.dependencies import get_store
from app.services.data_transfer import clear_data, export_data, import_data
from app.services.errors import InvalidImport
from app.services.record_store import RecordStore
from app.time_utils import today_local

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/export")
async def export_journal(
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
):
    """Download everything as one JSON document."""
    filename = f"daily-records-export-{today_local().isoformat()}.json"
    return JSONResponse(
        export_data(store, owner),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
async def import_journal(
    request: Request,
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
):
    """Import an export document sent as the JSON request body."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise InvalidImport(f"Import file is not valid JSON: {e}") from e
    report = import_data(store, owner, payload)
    request.app.state.engine.forget_owner(owner, cancel_jobs=True)
    return report.to_dict()


@router.post("/import-file")
async def import_journal_file(
    request: Request,
    file: UploadFile = File(...),
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
):
    """Import an uploaded export file."""
    raw = await file.read()
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidImport(f"Import file is not valid JSON: {e}") from e
    report = import_data(store, owner, payload)
    request.app.state.engine.forget_owner(owner, cancel_jobs=True)
    return report.to_dict()


@router.delete("/data")
async def clear_journal(
    request: Request,
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
):
    clear_data(store, owner)
    request.app.state.engine.forget_owner(owner, cancel_jobs=True)
    return {"ok": True}
