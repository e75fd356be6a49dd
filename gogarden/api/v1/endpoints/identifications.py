from fastapi import APIRouter, HTTPException

from gogarden.core.deps import HistoryStore
from gogarden.schemas.identification import (
    IdentificationHistoryCreate,
    IdentificationHistoryEntry,
    IdentificationHistoryList,
)

router = APIRouter(prefix="/identifications", tags=["identifications"])


@router.get("/history", response_model=IdentificationHistoryList)
async def list_history(store: HistoryStore):
    items = await store.load()
    return IdentificationHistoryList(items=items, total=len(items))


@router.post("/history", response_model=IdentificationHistoryEntry, status_code=201)
async def add_history_entry(body: IdentificationHistoryCreate, store: HistoryStore):
    entry = await store.add(body)
    if entry is None:
        raise HTTPException(status_code=500, detail="Could not save identification history")
    return entry


@router.delete("/history")
async def clear_history(store: HistoryStore):
    if not await store.clear():
        raise HTTPException(status_code=500, detail="Could not clear identification history")
    return {"status": "ok"}
