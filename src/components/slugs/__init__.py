"""
Slugs component - slug changes and the redirects they require.
"""

from ._impl import (
    SNAPSHOT_FIELDS,
    SlugChangeItemFactory,
    SlugRenameService,
    SlugService,
    apply_page_type_suffix,
    normalize_slug,
    replace_slug_prefix,
)
from .component import run, run_rename
from .models import (
    RenamePageInput,
    RenamePageOutput,
    SlugChangeItem,
    SlugChangeResult,
    SlugValidationError,
)
from .ports import PersistHooksPort, UnitOfWorkPort

__all__ = [
    # Entry points
    "run",
    "run_rename",
    # Service
    "SNAPSHOT_FIELDS",
    "SlugChangeItemFactory",
    "SlugRenameService",
    "SlugService",
    "apply_page_type_suffix",
    "normalize_slug",
    "replace_slug_prefix",
    # Models
    "RenamePageInput",
    "RenamePageOutput",
    "SlugChangeItem",
    "SlugChangeResult",
    "SlugValidationError",
    # Ports
    "PersistHooksPort",
    "UnitOfWorkPort",
]
