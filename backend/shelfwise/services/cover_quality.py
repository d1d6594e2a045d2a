"""
Cover quality scoring shared by every surface that ranks covers.

Search results, list pages and recommendation cards all order covers with
the same 0-5 tier so a "better cover" means the same thing everywhere.

Tiers (higher is better):
    5  CDN/S3-backed, high resolution, color
    4  high resolution, color
    3  CDN/S3-backed or meets the display threshold, color
    2  any other renderable color cover
    1  grayscale cover of any quality
    0  no usable cover
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from shelfwise.services.cover_dimensions import (
    has_known_bad_aspect_ratio,
    is_high_resolution,
    meets_display_threshold,
)
from shelfwise.services.cover_resolver import CoverUrlResolver, ResolvedCover
from shelfwise.services.cover_validation import is_likely_cover_image
from shelfwise.utils.text import CoverRefKind, classify, is_placeholder, sanitize


def _is_storage_key(url: Optional[str]) -> bool:
    # Bucket keys are relative; app-server paths start with a slash
    return classify(url) is CoverRefKind.STORAGE_KEY and not url.startswith("/")


@dataclass(frozen=True)
class RankingContext:
    """
    Everything the scorer looks at. Missing fields mean "unknown".

    `url` is the renderable cover. Callers holding raw columns can pass
    `storage_key` and `external_url` instead; a usable storage key wins and
    counts as storage-backed.
    """
    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    high_resolution: Optional[bool] = None
    grayscale: Optional[bool] = None  # None is treated as color
    from_storage: bool = False
    storage_key: Optional[str] = None
    external_url: Optional[str] = None

    @classmethod
    def from_resolved(cls, cover: ResolvedCover, grayscale: Optional[bool] = None) -> "RankingContext":
        return cls(
            url=cover.url,
            width=cover.width,
            height=cover.height,
            high_resolution=cover.high_resolution,
            grayscale=grayscale,
            from_storage=cover.from_storage,
        )


class CoverQualityScorer:
    def __init__(self, resolver: CoverUrlResolver):
        self._resolver = resolver

    def rank(self, context: RankingContext) -> int:
        url, from_storage = self._pick_url(context)
        if url is None or is_placeholder(url) or not is_likely_cover_image(url):
            return 0

        if has_known_bad_aspect_ratio(context.width, context.height):
            return 0

        if context.grayscale is True:
            return 1

        has_cdn = from_storage or self._resolver.is_cdn_url(url)
        high_res = context.high_resolution is True or is_high_resolution(context.width, context.height)
        meets_display = meets_display_threshold(context.width, context.height)

        if has_cdn and high_res:
            return 5
        if high_res:
            return 4
        if has_cdn or meets_display:
            return 3
        return 2

    @staticmethod
    def _pick_url(context: RankingContext) -> Tuple[Optional[str], bool]:
        key = sanitize(context.storage_key)
        if key and not is_placeholder(key):
            return key, True
        url = sanitize(context.url) or sanitize(context.external_url)
        return url, context.from_storage or _is_storage_key(url)

    def score_cover(self, cover: ResolvedCover, grayscale: Optional[bool] = None) -> int:
        return self.rank(RankingContext.from_resolved(cover, grayscale))

    def score_record(self, record) -> int:
        """Tier for any card/list/detail record carrying the shared cover fields."""
        return self.rank(
            RankingContext(
                url=record.cover_url,
                width=record.cover_width,
                height=record.cover_height,
                high_resolution=record.cover_high_resolution,
                grayscale=record.cover_grayscale,
            )
        )

    def sort_by_cover_quality(self, records: Iterable) -> List:
        """
        Stable "best cover first" ordering for list surfaces.

        Keys, in order: tier (desc), CDN-backed first, original position,
        then title.
        """
        indexed: Sequence = list(records)

        def sort_key(item):
            position, record = item
            return (
                -self.score_record(record),
                0 if self._resolver.is_cdn_url(record.cover_url) else 1,
                position,
                record.title or "",
            )

        return [record for _, record in sorted(enumerate(indexed), key=sort_key)]
