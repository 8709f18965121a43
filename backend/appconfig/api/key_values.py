"""
Key-Values API Endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, status

from ..schemas import KeyValueEntry, KeyValueIn
from ..services.commands import AppConfigCommands
from ..services.store import AppConfigStore
from .deps import get_commands, get_store, unwrap

router = APIRouter()


def _key_value_or_404(store: AppConfigStore, key_value_id: int) -> KeyValueEntry:
    key_value = store.key_value_entry_by_key_value_id(key_value_id).get()
    if key_value is None:
        raise HTTPException(status_code=404, detail="Key-value not found")
    return key_value


@router.get("/{key_value_id}", response_model=KeyValueEntry)
async def get_key_value(key_value_id: int, store: AppConfigStore = Depends(get_store)):
    return _key_value_or_404(store, key_value_id)


@router.put("/{key_value_id}", response_model=KeyValueEntry)
async def update_key_value(
    key_value_id: int,
    key_value: KeyValueIn,
    store: AppConfigStore = Depends(get_store),
    commands: AppConfigCommands = Depends(get_commands),
):
    """Edit a key-value in place"""
    existing = _key_value_or_404(store, key_value_id)
    updated = KeyValueEntry(
        id=existing.id,
        config_id=existing.config_id,
        key=key_value.key,
        value=key_value.value,
    )
    unwrap(await commands.store_key_value(updated))
    return updated


@router.delete("/{key_value_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_key_value(
    key_value_id: int,
    store: AppConfigStore = Depends(get_store),
    commands: AppConfigCommands = Depends(get_commands),
):
    existing = _key_value_or_404(store, key_value_id)
    unwrap(await commands.on_key_value_delete_clicked(existing))
