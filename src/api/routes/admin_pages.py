"""
Admin Pages API Routes.

Page slug renames. Renaming a page rewrites the slugs of its subtree
and creates redirects from every old URL in one transaction.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLitePageRepo, SQLiteUnitOfWork
from src.api.deps import (
    get_clock,
    get_page_repo,
    get_redirect_hooks,
    get_sites,
    get_unit_of_work,
)
from src.components.sites import Site
from src.components.slugs import RenamePageInput, run_rename
from src.shell.hooks.redirect_hooks import RedirectHooks

router = APIRouter()


class RenamePageRequest(BaseModel):
    """Request to change the slug of a page row."""

    slug: str = Field(..., description="New slug, e.g. /products/new-name")
    correlation_id: str | None = None


class PageResponse(BaseModel):
    id: int
    slug: str
    parent_id: int
    language_id: int
    translation_of: int | None = None
    title: str
    page_type: str
    hidden: bool


@router.get(
    "/pages/{page_id}",
    response_model=PageResponse,
    responses={404: {"description": "Page not found"}},
)
def get_page(
    page_id: int,
    pages: SQLitePageRepo = Depends(get_page_repo),
) -> PageResponse:
    page = pages.get_by_id(page_id)
    if page is None or page.deleted:
        raise HTTPException(status_code=404, detail="Page not found")
    return PageResponse(
        id=page.id,
        slug=page.slug,
        parent_id=page.parent_id,
        language_id=page.language_id,
        translation_of=page.translation_of,
        title=page.title,
        page_type=page.page_type.value,
        hidden=page.hidden,
    )


@router.post(
    "/pages/{page_id}/slug",
    responses={
        400: {"description": "Invalid slug"},
        404: {"description": "Page not found"},
    },
)
def rename_page(
    page_id: int,
    request: RenamePageRequest,
    uow: SQLiteUnitOfWork = Depends(get_unit_of_work),
    sites: list[Site] = Depends(get_sites),
    hooks: RedirectHooks = Depends(get_redirect_hooks),
    clock: SystemClock = Depends(get_clock),
) -> dict[str, Any]:
    """
    Rename a page.

    Returns the redirects created or updated and the new slugs of the
    page and its sub pages.
    """
    output = run_rename(
        RenamePageInput(
            page_id=page_id,
            new_slug=request.slug,
            correlation_id=request.correlation_id,
        ),
        uow=uow,
        sites=sites,
        hooks=hooks,
        time_port=clock,
    )

    if not output.success:
        if any(e.code == "not_found" for e in output.errors):
            raise HTTPException(status_code=404, detail="Page not found")
        raise HTTPException(
            status_code=400,
            detail={
                "errors": [
                    {"code": e.code, "message": e.message, "field": e.field}
                    for e in output.errors
                ]
            },
        )

    result = output.result
    assert result is not None
    return {
        "correlation_id": output.correlation_id,
        "created": [r.id for r in result.created],
        "updated": [r.id for r in result.updated],
        "removed": result.removed,
        "skipped": [{"source_host": h, "source_path": p} for h, p in result.skipped],
        "slugs": {str(pid): slug for pid, slug in result.updated_slugs.items()},
    }
