"""
Sites component - site topology and page routability.
"""

from ._impl import (
    SiteFinder,
    join_base_and_slug,
    resolve_base,
    site_from_rules,
    sites_from_rules,
)
from .models import (
    NON_ROUTABLE_PAGE_TYPES,
    BaseUrl,
    FrontendUser,
    PageRecord,
    PageType,
    PageTypeSuffix,
    Site,
    SiteLanguage,
    SiteRedirectSettings,
)
from .ports import PageRepoPort, TimePort

__all__ = [
    # Service
    "SiteFinder",
    "join_base_and_slug",
    "resolve_base",
    "site_from_rules",
    "sites_from_rules",
    # Models
    "NON_ROUTABLE_PAGE_TYPES",
    "BaseUrl",
    "FrontendUser",
    "PageRecord",
    "PageType",
    "PageTypeSuffix",
    "Site",
    "SiteLanguage",
    "SiteRedirectSettings",
    # Ports
    "PageRepoPort",
    "TimePort",
]
