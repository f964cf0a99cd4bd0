"""
Redirect middleware.

Checks every request against the redirect table before routing.

Key behaviors:
- No match (or an unresolvable target) falls through to the app
- A match returns a redirect with the rule's status code and an
  X-Redirect-By header
- The hit is recorded after the response is built; a failing hit
  counter never breaks the redirect
- redirect_was_hit hooks may replace the response
- Admin API, docs and health paths are never redirected
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.components.redirects import RedirectHandler, RequestContext
from src.shell.hooks.redirect_hooks import RedirectHit, RedirectHooks

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PREFIXES = ("/api/", "/docs", "/redoc", "/openapi.json", "/health")


def request_context(request: Request) -> RequestContext:
    """Explicit request data for matching and target resolution."""
    return RequestContext(
        scheme=request.url.scheme,
        host=(request.url.hostname or "").lower(),
        port=request.url.port,
        path=request.url.path,
        query=request.url.query,
        user=getattr(request.state, "frontend_user", None),
    )


class RedirectMiddleware(BaseHTTPMiddleware):
    """Answer requests that match a redirect rule."""

    def __init__(
        self,
        app: ASGIApp,
        handler_factory: Callable[[], RedirectHandler],
        hooks_factory: Callable[[], RedirectHooks] | None = None,
        excluded_prefixes: tuple[str, ...] = DEFAULT_EXCLUDED_PREFIXES,
    ) -> None:
        super().__init__(app)
        self._handler_factory = handler_factory
        self._hooks_factory = hooks_factory
        self._excluded_prefixes = excluded_prefixes

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self._excluded_prefixes):
            return await call_next(request)

        handler = self._handler_factory()
        context = request_context(request)
        decision = await run_in_threadpool(handler.handle, context)
        if decision.rule is None or decision.target_url is None:
            return await call_next(request)

        response: Response = RedirectResponse(
            url=decision.target_url,
            status_code=decision.status_code or 307,
            headers=decision.headers,
        )
        if self._hooks_factory is not None:
            response = self._hooks_factory().after_hit(
                RedirectHit(
                    request=request,
                    response=response,
                    rule=decision.rule,
                    target_url=decision.target_url,
                )
            )

        await run_in_threadpool(handler.record_hit, decision.rule)
        return response
