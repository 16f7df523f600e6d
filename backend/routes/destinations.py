"""Destination configuration routes.

RPC-style endpoints: every operation is a POST carrying a JSON request body,
and every response carries masked configurations only.
"""

from __future__ import annotations

import logging
import threading

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import (
    DB_PATH,
    ICONS_DIR,
    UNKNOWN_FIELD_POLICY,
    USE_ICON_URL_IN_API_RESPONSE,
)
from destinations import (
    ConfigValidationError,
    ConflictError,
    DestinationCloneRequestBody,
    DestinationCreate,
    DestinationDefinitionIdWithWorkspaceId,
    DestinationDefinitionSpecificationRead,
    DestinationError,
    DestinationHandler,
    DestinationIdRequestBody,
    DestinationRead,
    DestinationReadList,
    DestinationSearch,
    DestinationUpdate,
    NotFoundError,
    SchemaMismatchError,
    SQLiteDestinationRepository,
    UpstreamError,
    WorkspaceIdRequestBody,
    build_handler,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/destinations", tags=["destinations"])
specifications_router = APIRouter(
    prefix="/api/v1/destination_definition_specifications",
    tags=["destinations"],
)

_repository: SQLiteDestinationRepository | None = None
_repository_lock = threading.Lock()


def get_repository() -> SQLiteDestinationRepository:
    """Get the process-wide repository, creating its tables on first use."""
    global _repository
    if _repository is None:
        with _repository_lock:
            if _repository is None:
                _repository = SQLiteDestinationRepository(DB_PATH)
    return _repository


def get_destination_handler(
    repository: SQLiteDestinationRepository = Depends(get_repository),
) -> DestinationHandler:
    return build_handler(
        repository,
        unknown_field_policy=UNKNOWN_FIELD_POLICY,
        use_icon_url=USE_ICON_URL_IN_API_RESPONSE,
        icons_dir=ICONS_DIR,
    )


async def destination_error_handler(
    request: Request, exc: DestinationError
) -> JSONResponse:
    """Translate destination errors into HTTP responses.

    Registered on the app for :class:`DestinationError`.
    """
    body: dict = {"detail": str(exc)}
    if exc.destination_id:
        body["destination_id"] = exc.destination_id

    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ConfigValidationError):
        status_code = 422
        body["errors"] = exc.errors
    elif isinstance(exc, SchemaMismatchError):
        status_code = 422
        body["path"] = exc.path
    elif isinstance(exc, ConflictError):
        status_code = 409
        body["retryable"] = exc.retryable
    elif isinstance(exc, UpstreamError):
        logger.error(f"{request.url.path} failed: {exc}")
        status_code = 502
        body["collaborator"] = exc.collaborator
    else:
        logger.error(f"{request.url.path} failed: {exc}")
        status_code = 500

    return JSONResponse(status_code=status_code, content=body)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies without echoing submitted values."""
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": errors})


@router.post("/create", response_model=DestinationRead)
def create_destination(
    request: DestinationCreate,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    """Create a destination. Secret fields come back masked."""
    return handler.create_destination(request)


@router.post("/update", response_model=DestinationRead)
def update_destination(
    request: DestinationUpdate,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    """Replace a destination's configuration.

    Send the placeholder for secret fields that should keep their stored value.
    """
    return handler.update_destination(request)


@router.post("/partial_update", response_model=DestinationRead)
def partial_update_destination(
    request: DestinationUpdate,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    """Merge the given configuration fields over the stored configuration."""
    return handler.partial_update_destination(request)


@router.post("/get", response_model=DestinationRead)
def get_destination(
    request: DestinationIdRequestBody,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    return handler.get_destination(request)


@router.post("/list", response_model=DestinationReadList)
def list_destinations_for_workspace(
    request: WorkspaceIdRequestBody,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    return handler.list_destinations_for_workspace(request)


@router.post("/search", response_model=DestinationReadList)
def search_destinations(
    request: DestinationSearch,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    return handler.search_destinations(request)


@router.post("/clone", response_model=DestinationRead)
def clone_destination(
    request: DestinationCloneRequestBody,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    """Copy a destination, including its stored secrets."""
    return handler.clone_destination(request)


@router.post("/upgrade_version", status_code=204)
def upgrade_destination_version(
    request: DestinationIdRequestBody,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    """Pin the destination to its definition's default version."""
    handler.upgrade_destination_version(request)


@router.post("/delete", status_code=204)
def delete_destination(
    request: DestinationIdRequestBody,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    handler.delete_destination(request)


@specifications_router.post("/get", response_model=DestinationDefinitionSpecificationRead)
def get_destination_definition_specification(
    request: DestinationDefinitionIdWithWorkspaceId,
    handler: DestinationHandler = Depends(get_destination_handler),
):
    """Get the connector specification a workspace would use for a definition."""
    return handler.get_destination_specification(request)
