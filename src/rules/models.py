from pydantic import BaseModel, Field, field_validator, model_validator


class RedirectRules(BaseModel):
    hit_count_enabled: bool = True
    match_case_insensitive: bool = False
    redirect_by_header: str = "Slug Redirects"
    default_status_code: int = 307
    allowed_status_codes: list[int] = Field(default_factory=lambda: [301, 302, 303, 307, 308])

    @model_validator(mode="after")
    def _default_is_allowed(self) -> "RedirectRules":
        if self.default_status_code not in self.allowed_status_codes:
            raise ValueError(
                f"default_status_code {self.default_status_code} is not in allowed_status_codes"
            )
        return self


class PageTypeSuffixRules(BaseModel):
    default: str = ""
    map: dict[str, int] = Field(default_factory=dict)


class SiteRedirectRules(BaseModel):
    auto_update_slugs: bool = True
    auto_create_redirects: bool = True
    redirect_ttl_days: int = 0
    http_status_code: int = 307
    page_types: list[int] = Field(default_factory=lambda: [0])

    @field_validator("http_status_code")
    @classmethod
    def _is_redirect_status(cls, value: int) -> int:
        if not 300 <= value <= 399:
            raise ValueError(f"http_status_code must be a 3xx code, got {value}")
        return value

    @field_validator("redirect_ttl_days")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("redirect_ttl_days must be >= 0")
        return value


class SiteLanguageRules(BaseModel):
    language_id: int
    title: str = ""
    base: str
    enabled: bool = True


class SiteRules(BaseModel):
    identifier: str
    root_page_id: int
    base: str = "/"
    languages: list[SiteLanguageRules] = Field(default_factory=list)
    page_type_suffix: PageTypeSuffixRules | None = None
    redirects: SiteRedirectRules = Field(default_factory=SiteRedirectRules)


class Rules(BaseModel):
    redirects: RedirectRules = Field(default_factory=RedirectRules)
    sites: list[SiteRules] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_sites(self) -> "Rules":
        seen: set[str] = set()
        roots: set[int] = set()
        for site in self.sites:
            if site.identifier in seen:
                raise ValueError(f"Duplicate site identifier: {site.identifier}")
            if site.root_page_id in roots:
                raise ValueError(f"Duplicate site root page: {site.root_page_id}")
            seen.add(site.identifier)
            roots.add(site.root_page_id)
        return self
