"""
Slugs component - page renames with automatic redirects.

Invariants:
- I1: The rename and its redirects commit together or not at all
- I2: A page that had no live URL before the change gets no redirect
- I3: Manual and protected redirects are never overwritten
- I4: Redirect targets reference the page id, not its path
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import uuid4

from src.components.sites import Site

from ._impl import SlugRenameService
from .models import RenamePageInput, RenamePageOutput
from .ports import PersistHooksPort, TimePort, UnitOfWorkPort


def run_rename(
    inp: RenamePageInput,
    *,
    uow: UnitOfWorkPort,
    sites: Sequence[Site],
    hooks: PersistHooksPort | None = None,
    time_port: TimePort | None = None,
) -> RenamePageOutput:
    """
    Rename a page and rebuild the redirects of its subtree.

    Args:
        inp: Input with page id, new slug and optional correlation id.
        uow: Unit of work providing page and redirect repositories.
        sites: Configured sites.
        hooks: Optional pre/post persist hooks.
        time_port: Optional time provider.

    Returns:
        RenamePageOutput with the change summary or errors.

    Raises:
        Whatever a hook or the store raises; the transaction is rolled back.
    """
    correlation_id = inp.correlation_id or str(uuid4())
    service = SlugRenameService(uow, sites, hooks=hooks, time_port=time_port)
    result, errors = service.rename(inp.page_id, inp.new_slug, correlation_id)
    return RenamePageOutput(
        result=result,
        correlation_id=correlation_id,
        errors=errors,
        success=len(errors) == 0,
    )


def run(
    inp: RenamePageInput,
    *,
    uow: UnitOfWorkPort,
    sites: Sequence[Site],
    hooks: PersistHooksPort | None = None,
    time_port: TimePort | None = None,
) -> RenamePageOutput:
    """Main entry point for the slugs component."""
    if isinstance(inp, RenamePageInput):
        return run_rename(inp, uow=uow, sites=sites, hooks=hooks, time_port=time_port)
    raise ValueError(f"Unknown input type: {type(inp)}")
