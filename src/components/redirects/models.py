"""
Redirects component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.components.sites import FrontendUser

if TYPE_CHECKING:
    from ._demand import RedirectDemand

WILDCARD_HOST = "*"


class CreationType(str, Enum):
    """Who created a redirect."""

    MANUAL = "manual"
    AUTO_CREATED = "auto_created"


class IntegrityStatus(str, Enum):
    """Whether the target of a redirect still resolves."""

    OK = "ok"
    BROKEN = "broken"
    UNKNOWN = "unknown"


# --- Validation Error ---


@dataclass(frozen=True)
class RedirectValidationError:
    """Redirect validation error."""

    code: str
    message: str
    field: str | None = None


# --- Redirect Model ---


@dataclass(frozen=True)
class RedirectRule:
    """Stored mapping from a request pattern to a target."""

    id: int | None
    source_host: str
    source_path: str
    target: str
    target_status_code: int = 307
    is_regexp: bool = False
    respect_query_parameters: bool = False
    force_https: bool = False
    disabled: bool = False
    deleted: bool = False
    protected: bool = False
    disable_hitcount: bool = False
    hit_count: int = 0
    last_hit_on: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    creation_type: CreationType = CreationType.MANUAL
    integrity_status: IntegrityStatus = IntegrityStatus.UNKNOWN
    correlation_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        """Enabled, not deleted and inside its time window."""
        if self.disabled or self.deleted:
            return False
        if self.start_time is not None and self.start_time > now:
            return False
        if self.end_time is not None and self.end_time <= now:
            return False
        return True


@dataclass(frozen=True)
class RedirectCandidate:
    """Redirect about to be written by the slug service."""

    source_host: str
    source_path: str
    target: str
    target_status_code: int = 307
    end_time: datetime | None = None
    correlation_id: str | None = None
    creation_type: CreationType = CreationType.AUTO_CREATED

    def to_rule(self, now: datetime) -> RedirectRule:
        return RedirectRule(
            id=None,
            source_host=self.source_host,
            source_path=self.source_path,
            target=self.target,
            target_status_code=self.target_status_code,
            end_time=self.end_time,
            creation_type=self.creation_type,
            correlation_id=self.correlation_id,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True)
class RequestContext:
    """Request data the target resolver needs; passed explicitly per request."""

    scheme: str = "https"
    host: str = ""
    port: int | None = None
    path: str = "/"
    query: str = ""
    user: FrontendUser | None = None

    @property
    def host_with_port(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is None:
            return host
        return f"{host}:{self.port}"


# --- Input Models ---


@dataclass(frozen=True)
class CreateRedirectInput:
    """Input for creating a manual redirect."""

    source_path: str
    target: str
    source_host: str = WILDCARD_HOST
    status_code: int | None = None
    is_regexp: bool = False
    respect_query_parameters: bool = False
    force_https: bool = False
    protected: bool = False
    disable_hitcount: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None


@dataclass(frozen=True)
class UpdateRedirectInput:
    """Input for updating an existing redirect."""

    redirect_id: int
    updates: dict[str, Any]


@dataclass(frozen=True)
class DeleteRedirectInput:
    """Input for soft-deleting a redirect."""

    redirect_id: int


@dataclass(frozen=True)
class GetRedirectInput:
    """Input for getting a redirect."""

    redirect_id: int


@dataclass(frozen=True)
class ListRedirectsInput:
    """Input for filtering/sorting/paginating redirects."""

    demand: RedirectDemand | None = None


@dataclass(frozen=True)
class MatchRedirectInput:
    """Input for matching a request against the redirect table."""

    host: str
    path: str
    query: str = ""
    scheme: str = "https"
    user: FrontendUser | None = None


@dataclass(frozen=True)
class CleanupRedirectsInput:
    """Input for bulk soft-deleting redirects."""

    demand: RedirectDemand


@dataclass(frozen=True)
class CheckIntegrityInput:
    """Input for refreshing integrity status of all redirects."""

    pass


# --- Output Models ---


@dataclass(frozen=True)
class RedirectOutput:
    """Output containing a single redirect."""

    redirect: RedirectRule | None
    errors: list[RedirectValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class RedirectListOutput:
    """Output containing one page of redirects."""

    redirects: tuple[RedirectRule, ...]
    total: int = 0
    errors: list[RedirectValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class RedirectOperationOutput:
    """Output for redirect operations (create, update, delete)."""

    redirect: RedirectRule | None = None
    errors: list[RedirectValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class MatchOutput:
    """Output for a match; rule and target_url are None when nothing applies."""

    rule: RedirectRule | None
    target_url: str | None
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    errors: list[RedirectValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class CleanupOutput:
    """Output for a cleanup run."""

    removed_ids: tuple[int, ...]
    errors: list[RedirectValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class IntegrityOutput:
    """Output for an integrity run: redirect id -> status."""

    statuses: dict[int, IntegrityStatus]
    errors: list[RedirectValidationError] = field(default_factory=list)
    success: bool = True
