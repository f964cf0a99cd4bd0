"""
Admin Redirects API Routes.

Admin endpoints for managing redirect rules: filter/sort/paginate,
create, edit, soft-delete, bulk cleanup and integrity checks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from src.api.deps import get_redirect_service
from src.components.redirects import (
    CreateRedirectInput,
    RedirectDemand,
    RedirectRule,
    RedirectService,
    RedirectValidationError,
)

router = APIRouter()


class CreateRedirectRequest(BaseModel):
    """Request to create a redirect."""

    source_host: str = Field("*", description="Host name, or * for any host")
    source_path: str = Field(..., description="Source path or regex (e.g., /old-page)")
    target: str = Field(..., description="URL, path or page://<id>?language=<id>")
    status_code: int | None = Field(None, description="HTTP status code (3xx)")
    is_regexp: bool = False
    respect_query_parameters: bool = False
    force_https: bool = False
    protected: bool = False
    disable_hitcount: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None


class UpdateRedirectRequest(BaseModel):
    """Request to update a redirect."""

    source_host: str | None = None
    source_path: str | None = None
    target: str | None = None
    target_status_code: int | None = None
    is_regexp: bool | None = None
    respect_query_parameters: bool | None = None
    force_https: bool | None = None
    disabled: bool | None = None
    protected: bool | None = None
    disable_hitcount: bool | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class RedirectResponse(BaseModel):
    """Redirect response."""

    id: int
    source_host: str
    source_path: str
    target: str
    target_status_code: int
    is_regexp: bool
    respect_query_parameters: bool
    force_https: bool
    disabled: bool
    protected: bool
    disable_hitcount: bool
    hit_count: int
    last_hit_on: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    creation_type: str
    integrity_status: str
    correlation_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class RedirectListResponse(BaseModel):
    """One page of redirects."""

    redirects: list[RedirectResponse]
    count: int
    total: int
    page: int
    limit: int
    parameters: dict[str, Any]


class CleanupRequest(BaseModel):
    """Filters selecting the redirects to remove."""

    source_host: str | None = None
    source_path: str | None = None
    target: str | None = None
    target_status_code: int | None = None
    max_hits: int | None = None
    older_than: datetime | None = None
    creation_type: str | None = None
    integrity_status: str | None = None


class ValidationErrorResponse(BaseModel):
    """Validation error response."""

    errors: list[dict[str, Any]]


# --- Helper Functions ---


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _redirect_to_response(redirect: RedirectRule) -> RedirectResponse:
    """Convert RedirectRule to response model."""
    return RedirectResponse(
        id=redirect.id or 0,
        source_host=redirect.source_host,
        source_path=redirect.source_path,
        target=redirect.target,
        target_status_code=redirect.target_status_code,
        is_regexp=redirect.is_regexp,
        respect_query_parameters=redirect.respect_query_parameters,
        force_https=redirect.force_https,
        disabled=redirect.disabled,
        protected=redirect.protected,
        disable_hitcount=redirect.disable_hitcount,
        hit_count=redirect.hit_count,
        last_hit_on=_iso(redirect.last_hit_on),
        start_time=_iso(redirect.start_time),
        end_time=_iso(redirect.end_time),
        creation_type=redirect.creation_type.value,
        integrity_status=redirect.integrity_status.value,
        correlation_id=redirect.correlation_id,
        created_at=_iso(redirect.created_at),
        updated_at=_iso(redirect.updated_at),
    )


def _serialize_errors(
    errors: list[RedirectValidationError],
) -> list[dict[str, Any]]:
    """Serialize validation errors."""
    return [
        {
            "code": e.code,
            "message": e.message,
            "field": e.field,
        }
        for e in errors
    ]


# --- Routes ---


@router.get("/redirects", response_model=RedirectListResponse)
def list_redirects(
    page: int = Query(1, ge=1),
    order_field: str = "source_host",
    order_direction: str = "asc",
    source_host: str | None = None,
    source_path: str | None = None,
    target: str | None = None,
    target_status_code: int | None = None,
    max_hits: int | None = None,
    creation_type: str | None = None,
    protected: str | None = None,
    integrity_status: str | None = None,
    service: RedirectService = Depends(get_redirect_service),
) -> RedirectListResponse:
    """Filter, sort and paginate redirects."""
    demand = RedirectDemand.from_query(
        {
            "page": page,
            "order_field": order_field,
            "order_direction": order_direction,
            "source_host": source_host,
            "source_path": source_path,
            "target": target,
            "target_status_code": target_status_code,
            "max_hits": max_hits,
            "creation_type": creation_type,
            "protected": protected,
            "integrity_status": integrity_status,
        }
    )
    redirects, total = service.search(demand)
    return RedirectListResponse(
        redirects=[_redirect_to_response(r) for r in redirects],
        count=len(redirects),
        total=total,
        page=demand.page,
        limit=demand.limit,
        parameters=demand.parameters(),
    )


@router.get("/redirects/hosts")
def list_hosts(
    service: RedirectService = Depends(get_redirect_service),
) -> dict[str, list[str]]:
    """Source hosts in use, for the host filter."""
    return {"hosts": service.list_hosts()}


@router.post(
    "/redirects",
    response_model=RedirectResponse,
    status_code=201,
    responses={400: {"model": ValidationErrorResponse}},
)
def create_redirect(
    request: CreateRedirectRequest,
    service: RedirectService = Depends(get_redirect_service),
) -> RedirectResponse:
    """Create a manual redirect."""
    redirect, errors = service.create(CreateRedirectInput(**request.model_dump()))

    if errors:
        raise HTTPException(
            status_code=400,
            detail={"errors": _serialize_errors(errors)},
        )

    assert redirect is not None
    return _redirect_to_response(redirect)


@router.get(
    "/redirects/{redirect_id}",
    response_model=RedirectResponse,
    responses={404: {"description": "Redirect not found"}},
)
def get_redirect(
    redirect_id: int,
    service: RedirectService = Depends(get_redirect_service),
) -> RedirectResponse:
    """Get a redirect by ID."""
    redirect = service.get(redirect_id)
    if redirect is None:
        raise HTTPException(status_code=404, detail="Redirect not found")
    return _redirect_to_response(redirect)


@router.patch(
    "/redirects/{redirect_id}",
    response_model=RedirectResponse,
    responses={
        400: {"model": ValidationErrorResponse},
        404: {"description": "Redirect not found"},
    },
)
def update_redirect(
    redirect_id: int,
    request: UpdateRedirectRequest,
    service: RedirectService = Depends(get_redirect_service),
) -> RedirectResponse:
    """
    Update a redirect.

    Validates same constraints as create.
    """
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")

    redirect, errors = service.update(redirect_id, updates)

    if errors:
        if any(e.code == "not_found" for e in errors):
            raise HTTPException(status_code=404, detail="Redirect not found")
        raise HTTPException(
            status_code=400,
            detail={"errors": _serialize_errors(errors)},
        )

    assert redirect is not None
    return _redirect_to_response(redirect)


@router.delete(
    "/redirects/{redirect_id}",
    responses={404: {"description": "Redirect not found"}},
)
def delete_redirect(
    redirect_id: int,
    service: RedirectService = Depends(get_redirect_service),
) -> dict[str, bool]:
    """Soft-delete a redirect."""
    if not service.delete(redirect_id):
        raise HTTPException(status_code=404, detail="Redirect not found")
    return {"deleted": True}


@router.post("/redirects/cleanup")
def cleanup_redirects(
    request: CleanupRequest,
    service: RedirectService = Depends(get_redirect_service),
) -> dict[str, Any]:
    """
    Soft-delete unprotected redirects matching the filters.

    At least one filter is required.
    """
    demand = RedirectDemand(
        source_hosts=(request.source_host,) if request.source_host else (),
        source_path=request.source_path or "",
        target=request.target or "",
        status_codes=(request.target_status_code,) if request.target_status_code else (),
        max_hits=request.max_hits or 0,
        older_than=request.older_than,
        creation_type=request.creation_type,
        integrity_status=request.integrity_status,
    )
    if not demand.has_constraints():
        raise HTTPException(status_code=400, detail="Cleanup needs at least one filter")

    removed = service.cleanup(demand)
    return {"removed": removed, "count": len(removed)}


@router.post("/redirects/integrity")
def check_integrity(
    service: RedirectService = Depends(get_redirect_service),
) -> dict[str, Any]:
    """Recompute the integrity status of all redirects."""
    statuses = service.check_integrity()
    broken = [rid for rid, status in statuses.items() if status.value == "broken"]
    return {
        "total_checked": len(statuses),
        "broken": broken,
        "statuses": {str(rid): status.value for rid, status in statuses.items()},
    }
