"""
Turns storage keys or raw cover URLs into one renderable URL with dimensions.

The resolver is a total function: whatever it is handed, it returns a
non-empty URL (the bundled placeholder as a last resort) together with
explicit or estimated dimensions and a resolved high-resolution flag.
"""
from dataclasses import dataclass
from typing import Optional

from shelfwise.services.cover_dimensions import is_high_resolution, resolve_dimensions
from shelfwise.utils.text import (
    PLACEHOLDER_COVER_PATH,
    CoverRefKind,
    classify,
    sanitize,
)


@dataclass(frozen=True)
class CdnConfig:
    """Process-wide CDN settings, built once at startup and injected."""
    enabled: bool = False
    base_url: str = ""

    @classmethod
    def from_values(cls, enabled: bool, base_url: Optional[str]) -> "CdnConfig":
        base = (base_url or "").strip()
        if base and not base.endswith("/"):
            base = base + "/"
        return cls(enabled=bool(enabled and base), base_url=base)

    @property
    def base(self) -> str:
        """CDN prefix to use, or "" when the CDN is disabled."""
        return self.base_url if self.enabled else ""


@dataclass(frozen=True)
class CoverReference:
    """Raw cover fields as stored on a book row."""
    primary: Optional[str] = None
    fallback_external_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    high_resolution: Optional[bool] = None
    grayscale: Optional[bool] = None


@dataclass(frozen=True)
class ResolvedCover:
    url: str
    storage_key: Optional[str]
    from_storage: bool
    width: int
    height: int
    high_resolution: bool


@dataclass(frozen=True)
class _UrlResolution:
    url: str
    storage_key: Optional[str] = None
    from_storage: bool = False


class CoverUrlResolver:
    def __init__(self, cdn: Optional[CdnConfig] = None):
        self._cdn = cdn or CdnConfig()

    @property
    def cdn(self) -> CdnConfig:
        return self._cdn

    @property
    def cdn_configured(self) -> bool:
        return bool(self._cdn.base)

    def is_cdn_url(self, url: Optional[str]) -> bool:
        base = self._cdn.base
        return bool(url) and bool(base) and url.startswith(base)

    def resolve(
        self,
        primary: Optional[str],
        fallback: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        high_resolution: Optional[bool] = None,
    ) -> ResolvedCover:
        resolution = self._resolve_url(primary, fallback)
        dimensions = resolve_dimensions(resolution.url, width, height)
        resolved_high_res = high_resolution is True or (
            not dimensions.defaulted and is_high_resolution(dimensions.width, dimensions.height)
        )
        return ResolvedCover(
            url=resolution.url,
            storage_key=resolution.storage_key,
            from_storage=resolution.from_storage,
            width=dimensions.width,
            height=dimensions.height,
            high_resolution=resolved_high_res,
        )

    def resolve_reference(self, reference: CoverReference) -> ResolvedCover:
        return self.resolve(
            reference.primary,
            reference.fallback_external_url,
            reference.width,
            reference.height,
            reference.high_resolution,
        )

    def _resolve_url(self, primary: Optional[str], fallback: Optional[str]) -> _UrlResolution:
        candidate = sanitize(primary)
        kind = classify(candidate)
        if kind is CoverRefKind.PLACEHOLDER:
            return _UrlResolution(PLACEHOLDER_COVER_PATH)
        if kind is CoverRefKind.REMOTE:
            return _UrlResolution(candidate)
        if kind is CoverRefKind.STORAGE_KEY and self.cdn_configured:
            key = candidate[1:] if candidate.startswith("/") else candidate
            if key.strip():
                return _UrlResolution(self._cdn.base + key, key, True)

        external = sanitize(fallback)
        kind = classify(external)
        if kind is CoverRefKind.PLACEHOLDER:
            return _UrlResolution(PLACEHOLDER_COVER_PATH)
        if kind is CoverRefKind.REMOTE:
            return _UrlResolution(external)

        return _UrlResolution(PLACEHOLDER_COVER_PATH)
