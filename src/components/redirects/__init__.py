"""
Redirects component - redirect matching, target resolution and administration.
"""

from ._demand import RedirectDemand
from ._impl import (
    REDIRECT_BY_HEADER,
    HitTracker,
    RedirectConfig,
    RedirectHandler,
    RedirectMatcher,
    RedirectService,
    create_redirect_handler,
    create_redirect_service,
    detect_loop,
    validate_source_path,
    validate_status_code,
    validate_target,
)
from ._targets import (
    AbsoluteTarget,
    PageTarget,
    RelativeTarget,
    TargetResolver,
    format_page_target,
    is_absolute_url,
    is_internal_path,
    parse_target,
)
from .component import (
    run,
    run_check_integrity,
    run_cleanup,
    run_create,
    run_delete,
    run_get,
    run_list,
    run_match,
    run_update,
)
from .models import (
    WILDCARD_HOST,
    CheckIntegrityInput,
    CleanupOutput,
    CleanupRedirectsInput,
    CreateRedirectInput,
    CreationType,
    DeleteRedirectInput,
    GetRedirectInput,
    IntegrityOutput,
    IntegrityStatus,
    ListRedirectsInput,
    MatchOutput,
    MatchRedirectInput,
    RedirectCandidate,
    RedirectListOutput,
    RedirectOperationOutput,
    RedirectOutput,
    RedirectRule,
    RedirectValidationError,
    RequestContext,
    UpdateRedirectInput,
)
from .ports import RedirectRepoPort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_check_integrity",
    "run_cleanup",
    "run_create",
    "run_delete",
    "run_get",
    "run_list",
    "run_match",
    "run_update",
    # Input models
    "CheckIntegrityInput",
    "CleanupRedirectsInput",
    "CreateRedirectInput",
    "DeleteRedirectInput",
    "GetRedirectInput",
    "ListRedirectsInput",
    "MatchRedirectInput",
    "RedirectDemand",
    "RequestContext",
    "UpdateRedirectInput",
    # Output models
    "CleanupOutput",
    "IntegrityOutput",
    "MatchOutput",
    "RedirectListOutput",
    "RedirectOperationOutput",
    "RedirectOutput",
    "RedirectValidationError",
    # Domain
    "WILDCARD_HOST",
    "CreationType",
    "IntegrityStatus",
    "RedirectCandidate",
    "RedirectRule",
    # Targets
    "AbsoluteTarget",
    "PageTarget",
    "RelativeTarget",
    "TargetResolver",
    "format_page_target",
    "is_absolute_url",
    "is_internal_path",
    "parse_target",
    # Ports
    "RedirectRepoPort",
    "TimePort",
    # _impl re-exports
    "REDIRECT_BY_HEADER",
    "HitTracker",
    "RedirectConfig",
    "RedirectHandler",
    "RedirectMatcher",
    "RedirectService",
    "create_redirect_handler",
    "create_redirect_service",
    "detect_loop",
    "validate_source_path",
    "validate_status_code",
    "validate_target",
]
