"""
Redirects component - redirect matching and administration.

Matches requests against the redirect table and manages the table itself.

Invariants:
- I1: At most one rule applies to a request (deterministic precedence)
- I2: A rule whose target does not resolve never produces a redirect
- I3: Status code must be one of the allowed 3xx codes
- I4: Target must be an http(s) URL, a path or a page reference
- I5: A rule cannot redirect to its own source
- I6: Protected rules are never removed by cleanup
"""

from __future__ import annotations

from urllib.parse import SplitResult, urlsplit

from src.components.sites import SiteFinder
from src.rules.models import RedirectRules

from ._impl import (
    RedirectConfig,
    RedirectService,
    create_redirect_handler,
)
from .models import (
    CheckIntegrityInput,
    CleanupOutput,
    CleanupRedirectsInput,
    CreateRedirectInput,
    DeleteRedirectInput,
    GetRedirectInput,
    IntegrityOutput,
    ListRedirectsInput,
    MatchOutput,
    MatchRedirectInput,
    RedirectListOutput,
    RedirectOperationOutput,
    RedirectOutput,
    RedirectValidationError,
    RequestContext,
    UpdateRedirectInput,
)
from .ports import RedirectRepoPort, TimePort


def _port_of(authority: SplitResult) -> int | None:
    try:
        return authority.port
    except ValueError:
        return None


def _build_config(rules: RedirectRules | None) -> RedirectConfig:
    """Build redirect config from rules."""
    if rules is None:
        return RedirectConfig()
    return RedirectConfig.from_rules(rules)


def _create_service(
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None,
    rules: RedirectRules | None,
    time_port: TimePort | None,
) -> RedirectService:
    """Create redirect service from ports."""
    return RedirectService(
        repo=repo,
        site_finder=site_finder,
        time_port=time_port,
        config=_build_config(rules),
    )


def _not_found(redirect_id: int) -> list[RedirectValidationError]:
    return [
        RedirectValidationError(
            code="not_found",
            message=f"Redirect {redirect_id} not found",
        )
    ]


# --- Component Entry Points ---


def run_create(
    inp: CreateRedirectInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> RedirectOperationOutput:
    """
    Create a manual redirect.

    Args:
        inp: Input containing source, target, and options.
        repo: Redirect repository port.
        site_finder: Optional site finder, used to check page targets.
        rules: Optional redirect rules for configuration.
        time_port: Optional time provider.

    Returns:
        RedirectOperationOutput with created redirect or errors.
    """
    service = _create_service(repo, site_finder, rules, time_port)
    redirect, errors = service.create(inp)
    return RedirectOperationOutput(
        redirect=redirect,
        errors=errors,
        success=len(errors) == 0,
    )


def run_update(
    inp: UpdateRedirectInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> RedirectOperationOutput:
    """
    Update an existing redirect.

    Returns:
        RedirectOperationOutput with updated redirect or errors.
    """
    service = _create_service(repo, site_finder, rules, time_port)
    redirect, errors = service.update(inp.redirect_id, inp.updates)
    return RedirectOperationOutput(
        redirect=redirect,
        errors=errors,
        success=len(errors) == 0,
    )


def run_delete(
    inp: DeleteRedirectInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> RedirectOperationOutput:
    """Soft-delete a redirect."""
    service = _create_service(repo, site_finder, rules, time_port)

    if not service.delete(inp.redirect_id):
        return RedirectOperationOutput(
            redirect=None,
            errors=_not_found(inp.redirect_id),
            success=False,
        )

    return RedirectOperationOutput(redirect=None, errors=[], success=True)


def run_get(
    inp: GetRedirectInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> RedirectOutput:
    """Get a redirect by ID."""
    service = _create_service(repo, site_finder, rules, time_port)

    redirect = service.get(inp.redirect_id)
    if redirect is None:
        return RedirectOutput(
            redirect=None,
            errors=_not_found(inp.redirect_id),
            success=False,
        )

    return RedirectOutput(redirect=redirect, errors=[], success=True)


def run_list(
    inp: ListRedirectsInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> RedirectListOutput:
    """
    Filter, sort and paginate redirects.

    Args:
        inp: Input with an optional demand (defaults: first page, by host).
        repo: Redirect repository port.

    Returns:
        RedirectListOutput with one page of redirects and the total.
    """
    service = _create_service(repo, site_finder, rules, time_port)
    redirects, total = service.search(inp.demand)
    return RedirectListOutput(
        redirects=tuple(redirects),
        total=total,
        errors=[],
        success=True,
    )


def run_match(
    inp: MatchRedirectInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> MatchOutput:
    """
    Match a request and resolve the redirect target.

    Does not record a hit; the caller does that once the response is sent.

    Args:
        inp: Input containing host (with port), path and query string.
        repo: Redirect repository port.
        site_finder: Site finder for page reference targets.

    Returns:
        MatchOutput with rule, target URL, status and headers, or an
        empty MatchOutput when the request should fall through.
    """
    handler = create_redirect_handler(
        repo,
        site_finder=site_finder,
        config=_build_config(rules),
        time_port=time_port,
    )
    authority = urlsplit("//" + inp.host)
    context = RequestContext(
        scheme=inp.scheme,
        host=authority.hostname or "",
        port=_port_of(authority),
        path=inp.path,
        query=inp.query,
        user=inp.user,
    )
    return handler.handle(context)


def run_cleanup(
    inp: CleanupRedirectsInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> CleanupOutput:
    """Soft-delete unprotected redirects matching the demand."""
    service = _create_service(repo, site_finder, rules, time_port)

    if not inp.demand.has_constraints():
        return CleanupOutput(
            removed_ids=(),
            errors=[
                RedirectValidationError(
                    code="cleanup_requires_filter",
                    message="Cleanup needs at least one filter",
                )
            ],
            success=False,
        )

    return CleanupOutput(removed_ids=tuple(service.cleanup(inp.demand)))


def run_check_integrity(
    inp: CheckIntegrityInput,
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> IntegrityOutput:
    """Recompute the integrity status of every redirect."""
    service = _create_service(repo, site_finder, rules, time_port)
    return IntegrityOutput(statuses=service.check_integrity())


def run(
    inp: (
        CreateRedirectInput
        | UpdateRedirectInput
        | DeleteRedirectInput
        | GetRedirectInput
        | ListRedirectsInput
        | MatchRedirectInput
        | CleanupRedirectsInput
        | CheckIntegrityInput
    ),
    *,
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    rules: RedirectRules | None = None,
    time_port: TimePort | None = None,
) -> (
    RedirectOutput
    | RedirectListOutput
    | RedirectOperationOutput
    | MatchOutput
    | CleanupOutput
    | IntegrityOutput
):
    """
    Main entry point for the redirects component.

    Dispatches to appropriate handler based on input type.
    """
    ports = {"repo": repo, "site_finder": site_finder, "rules": rules, "time_port": time_port}
    if isinstance(inp, CreateRedirectInput):
        return run_create(inp, **ports)
    elif isinstance(inp, UpdateRedirectInput):
        return run_update(inp, **ports)
    elif isinstance(inp, DeleteRedirectInput):
        return run_delete(inp, **ports)
    elif isinstance(inp, GetRedirectInput):
        return run_get(inp, **ports)
    elif isinstance(inp, ListRedirectsInput):
        return run_list(inp, **ports)
    elif isinstance(inp, MatchRedirectInput):
        return run_match(inp, **ports)
    elif isinstance(inp, CleanupRedirectsInput):
        return run_cleanup(inp, **ports)
    elif isinstance(inp, CheckIntegrityInput):
        return run_check_integrity(inp, **ports)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
