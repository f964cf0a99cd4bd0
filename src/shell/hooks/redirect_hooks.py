"""
RedirectHooks - extension points around automatic redirects.

Key behaviors:
- pre_persist handlers run in order; each may return a replacement
  candidate (None keeps the current one)
- post_persist handlers receive the stored row, after it has an id
- redirect_was_hit handlers run after a redirect response is built and
  may return a replacement response
- Handler errors propagate to the caller
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from fastapi import Request, Response

from src.components.redirects.models import RedirectCandidate, RedirectRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedirectHit:
    """A redirect that is about to be sent to the client."""

    request: Request
    response: Response
    rule: RedirectRule
    target_url: str


PrePersistHandler = Callable[[RedirectCandidate], RedirectCandidate | None]
PostPersistHandler = Callable[[RedirectRule], None]
RedirectWasHitHandler = Callable[[RedirectHit], Response | None]


@dataclass
class RedirectHooks:
    """Injected handler lists; no runtime discovery."""

    pre_persist: list[PrePersistHandler] = field(default_factory=list)
    post_persist: list[PostPersistHandler] = field(default_factory=list)
    redirect_was_hit: list[RedirectWasHitHandler] = field(default_factory=list)

    def before_persist(self, candidate: RedirectCandidate) -> RedirectCandidate:
        """Run pre-persist handlers and return the final candidate."""
        for handler in self.pre_persist:
            result = handler(candidate)
            if result is not None:
                candidate = result
        return candidate

    def after_persist(self, rule: RedirectRule) -> None:
        for handler in self.post_persist:
            handler(rule)

    def after_hit(self, hit: RedirectHit) -> Response:
        """Run hit handlers; the last returned response wins."""
        response = hit.response
        for handler in self.redirect_was_hit:
            replaced = handler(
                RedirectHit(
                    request=hit.request,
                    response=response,
                    rule=hit.rule,
                    target_url=hit.target_url,
                )
            )
            if replaced is not None:
                logger.debug("Response for redirect %s replaced by hook", hit.rule.id)
                response = replaced
        return response
