"""
Configs API Endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from ..schemas import (
    ConfigEntry,
    ConfigListEntry,
    ConfigUpdate,
    CreatedResponse,
    ExecutionResultEntry,
    KeyValueEntry,
    KeyValueIn,
    NewKeyValue,
)
from ..services.commands import AppConfigCommands
from ..services.store import AppConfigStore
from .deps import get_commands, get_store, unwrap

router = APIRouter()


def _entry_or_404(store: AppConfigStore, config_id: int) -> ConfigEntry:
    entry = store.fetch_config_entry_by_id(config_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Config not found")
    return entry


@router.get("", response_model=List[ConfigListEntry])
async def list_configs(store: AppConfigStore = Depends(get_store)):
    """All configs, each with its most recent execution result"""
    return store.fetch_config_entries().get()


@router.post("", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def add_config(commands: AppConfigCommands = Depends(get_commands)):
    """Create an empty config"""
    return {"id": unwrap(await commands.on_add_config_clicked())}


@router.get("/{config_id}", response_model=ConfigEntry)
async def get_config(config_id: int, store: AppConfigStore = Depends(get_store)):
    return _entry_or_404(store, config_id)


@router.patch("/{config_id}", response_model=ConfigEntry)
async def update_config(
    config_id: int,
    update: ConfigUpdate,
    store: AppConfigStore = Depends(get_store),
    commands: AppConfigCommands = Depends(get_commands),
):
    """Rename a config and/or point it at another authority"""
    _entry_or_404(store, config_id)
    if update.name is not None:
        unwrap(await commands.on_name_updated(update.name, config_id))
    if update.authority is not None:
        unwrap(await commands.on_authority_updated(update.authority, config_id))
    return _entry_or_404(store, config_id)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_config(
    config_id: int,
    store: AppConfigStore = Depends(get_store),
    commands: AppConfigCommands = Depends(get_commands),
):
    """Delete a config together with its key-values and execution history"""
    entry = _entry_or_404(store, config_id)
    unwrap(await commands.on_config_entry_delete_clicked(entry))


@router.post("/{config_id}/clone", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def clone_config(
    config_id: int,
    store: AppConfigStore = Depends(get_store),
    commands: AppConfigCommands = Depends(get_commands),
):
    """Copy a config and its key-values; execution history is not copied"""
    entry = _entry_or_404(store, config_id)
    return {"id": unwrap(await commands.on_config_entry_clone_clicked(entry))}


@router.post("/{config_id}/execute", response_model=ExecutionResultEntry)
async def execute_config(config_id: int, commands: AppConfigCommands = Depends(get_commands)):
    """Apply a config to its authority and return the recorded result"""
    return unwrap(await commands.on_detail_execute_clicked(config_id))


@router.get("/{config_id}/results", response_model=List[ExecutionResultEntry])
async def list_results(config_id: int, store: AppConfigStore = Depends(get_store)):
    """Execution history, newest first"""
    return store.fetch_execution_result_entries_by_config_id(config_id).get()


@router.get("/{config_id}/key-values", response_model=List[KeyValueEntry])
async def list_key_values(config_id: int, store: AppConfigStore = Depends(get_store)):
    return store.key_value_entries_by_config_id(config_id).get()


@router.post("/{config_id}/key-values", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def add_key_value(
    config_id: int,
    key_value: KeyValueIn,
    commands: AppConfigCommands = Depends(get_commands),
):
    new = NewKeyValue(config_id=config_id, key=key_value.key, value=key_value.value)
    return {"id": unwrap(await commands.store_key_value(new))}
