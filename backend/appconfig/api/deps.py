"""
API dependencies
"""
from fastapi import HTTPException, Request

from ..errors import CommandResult, RecoverableFailure
from ..services.commands import AppConfigCommands
from ..services.store import AppConfigStore


def get_store(request: Request) -> AppConfigStore:
    return request.app.state.store


def get_commands(request: Request) -> AppConfigCommands:
    return request.app.state.commands


def unwrap(result: CommandResult):
    """Return a command's value; not-found becomes a 404, a broken invariant re-raises"""
    if isinstance(result, RecoverableFailure):
        raise HTTPException(status_code=404, detail=str(result.error))
    return result.unwrap()
