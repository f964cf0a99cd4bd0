"""
RedirectDemand - filter, sort and pagination for the redirect admin list.

Key behaviors:
- Unknown order fields fall back to source_host, unknown directions to asc
- Ordering by source_host adds source_path as secondary order
- Empty/zero filters mean "no constraint"
- The same demand drives listing and bulk cleanup
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .models import RedirectRule

ORDER_ASCENDING = "asc"
ORDER_DESCENDING = "desc"
DEFAULT_ORDER_FIELD = "source_host"
DEFAULT_SECONDARY_ORDER_FIELD = "source_path"
ORDER_FIELDS = ("source_host", "source_path", "last_hit_on", "hit_count", "protected")
DEFAULT_LIMIT = 50


@dataclass(frozen=True)
class RedirectDemand:
    """Filter/sort/page request over redirects."""

    page: int = 1
    order_field: str = DEFAULT_ORDER_FIELD
    order_direction: str = ORDER_ASCENDING
    source_hosts: tuple[str, ...] = ()
    source_path: str = ""
    target: str = ""
    status_codes: tuple[int, ...] = ()
    max_hits: int = 0
    older_than: datetime | None = None
    creation_type: str | None = None
    protected: bool | None = None
    integrity_status: str | None = None
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        if self.order_field not in ORDER_FIELDS:
            object.__setattr__(self, "order_field", DEFAULT_ORDER_FIELD)
        if self.order_direction not in (ORDER_ASCENDING, ORDER_DESCENDING):
            object.__setattr__(self, "order_direction", ORDER_ASCENDING)
        if self.page < 1:
            object.__setattr__(self, "page", 1)
        if self.limit < 1:
            object.__setattr__(self, "limit", DEFAULT_LIMIT)

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> RedirectDemand:
        """Build a demand from flat query/form parameters."""

        def _int(key: str, default: int = 0) -> int:
            try:
                return int(params.get(key) or default)
            except (TypeError, ValueError):
                return default

        source_host = params.get("source_host") or ""
        status_code = _int("target_status_code")
        protected = params.get("protected")
        return cls(
            page=_int("page", 1),
            order_field=params.get("order_field") or DEFAULT_ORDER_FIELD,
            order_direction=params.get("order_direction") or ORDER_ASCENDING,
            source_hosts=(source_host,) if source_host else (),
            source_path=params.get("source_path") or "",
            target=params.get("target") or "",
            status_codes=(status_code,) if status_code > 0 else (),
            max_hits=_int("max_hits"),
            creation_type=params.get("creation_type") or None,
            protected=None if protected in (None, "", "-1") else str(protected) in ("1", "true"),
            integrity_status=params.get("integrity_status") or None,
        )

    @property
    def secondary_order_field(self) -> str:
        if self.order_field == DEFAULT_ORDER_FIELD:
            return DEFAULT_SECONDARY_ORDER_FIELD
        return ""

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def reverse_order_direction(self) -> str:
        if self.order_direction == ORDER_ASCENDING:
            return ORDER_DESCENDING
        return ORDER_ASCENDING

    def has_constraints(self) -> bool:
        return bool(
            self.source_path
            or self.source_hosts
            or self.target
            or self.status_codes
            or self.max_hits > 0
            or self.older_than is not None
            or self.creation_type is not None
            or self.protected is not None
            or self.integrity_status
        )

    def parameters(self) -> dict[str, Any]:
        """Active filters, for building pagination links."""
        params: dict[str, Any] = {}
        if self.source_path:
            params["source_path"] = self.source_path
        if self.source_hosts:
            params["source_host"] = self.source_hosts[0]
        if self.target:
            params["target"] = self.target
        if self.status_codes:
            params["target_status_code"] = self.status_codes[0]
        if self.max_hits > 0:
            params["max_hits"] = self.max_hits
        if self.creation_type is not None:
            params["creation_type"] = self.creation_type
        if self.protected is not None:
            params["protected"] = int(self.protected)
        if self.integrity_status:
            params["integrity_status"] = self.integrity_status
        return params

    # --- In-process evaluation (used by non-SQL stores) ---

    def matches(self, rule: RedirectRule) -> bool:
        if rule.deleted:
            return False
        if self.source_hosts and rule.source_host not in self.source_hosts:
            return False
        if self.source_path and self.source_path not in rule.source_path:
            return False
        if self.target and self.target not in rule.target:
            return False
        if self.status_codes and rule.target_status_code not in self.status_codes:
            return False
        if self.max_hits > 0 and rule.hit_count >= self.max_hits:
            return False
        if self.older_than is not None:
            if rule.created_at is None or rule.created_at >= self.older_than:
                return False
        if self.creation_type is not None and rule.creation_type.value != self.creation_type:
            return False
        if self.protected is not None and rule.protected != self.protected:
            return False
        if self.integrity_status and rule.integrity_status.value != self.integrity_status:
            return False
        return True

    def _sort_value(self, rule: RedirectRule, field_name: str) -> tuple[int, Any]:
        value = getattr(rule, field_name)
        # None sorts first, like NULL in ascending SQL order
        if value is None:
            return (0, 0)
        return (1, value)

    def apply(self, rules: Iterable[RedirectRule]) -> tuple[list[RedirectRule], int]:
        """Filter, sort and slice; returns (page, total)."""
        matched = [r for r in rules if self.matches(r)]
        matched.sort(key=lambda r: r.id or 0)
        if self.secondary_order_field:
            matched.sort(key=lambda r: self._sort_value(r, self.secondary_order_field))
        matched.sort(
            key=lambda r: self._sort_value(r, self.order_field),
            reverse=self.order_direction == ORDER_DESCENDING,
        )
        return matched[self.offset : self.offset + self.limit], len(matched)
