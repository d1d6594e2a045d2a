"""
Fallback covers for books whose primary cover is missing or unusable.

A book's own cover columns are sometimes empty, point at the placeholder, or
at a dev-only host. The catalog also keeps a table of alternative images per
book (book_image_links); this module picks the best of those for a whole page
of books in one query and swaps it into the records that need it.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar
from urllib.parse import urlparse
from uuid import UUID
import logging

from shelfwise.schemas.book import CoverFields
from shelfwise.services.book_queries import BookQueryRepository
from shelfwise.services.cover_resolver import CoverUrlResolver, ResolvedCover
from shelfwise.services.cover_validation import is_likely_cover_image
from shelfwise.utils.text import CoverRefKind, classify, is_http, is_placeholder, sanitize
from shelfwise.utils.timing import log_elapsed, now_ms

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0"}

# Covers cached by the app server itself; only valid when served from the CDN
LOCAL_COVER_PATH = "/images/book-covers/"

R = TypeVar("R", bound=CoverFields)


def needs_fallback(url: Optional[str], resolver: CoverUrlResolver) -> bool:
    """True when a record's cover URL can't be shown as-is."""
    cleaned = sanitize(url)
    if cleaned is None or is_placeholder(cleaned):
        return True

    if LOCAL_COVER_PATH in cleaned and not resolver.is_cdn_url(cleaned):
        return True

    if is_http(cleaned):
        try:
            host = (urlparse(cleaned).hostname or "").lower()
        except ValueError:
            return True
        return host in LOOPBACK_HOSTS

    # Anything else (data URIs, bare storage keys) is only usable as a storage key behind a CDN
    return not (resolver.cdn_configured and classify(cleaned) is CoverRefKind.STORAGE_KEY)


@dataclass(frozen=True)
class FallbackCover:
    cover: ResolvedCover
    grayscale: Optional[bool] = None


class FallbackCoverFetcher:
    def __init__(self, queries: BookQueryRepository, resolver: CoverUrlResolver):
        self._queries = queries
        self._resolver = resolver

    def fetch_fallbacks(self, book_ids: Iterable[UUID]) -> Dict[UUID, FallbackCover]:
        """
        Best alternative cover per book, keyed by book ID.

        Books without a usable candidate are simply missing from the result.
        Raises CoverLookupError if the batch query fails.
        """
        ids = list(dict.fromkeys(book_ids))
        if not ids:
            return {}

        start = now_ms()
        rows = self._queries.fetch_fallback_image_rows(ids)

        fallbacks: Dict[UUID, FallbackCover] = {}
        for row in rows:
            book_id = row["book_id"]
            if book_id in fallbacks:
                continue
            url = sanitize(row.get("url"))
            primary = sanitize(row.get("s3_image_path")) or url
            if primary is None:
                continue
            if url and not is_likely_cover_image(url):
                continue

            resolved = self._resolver.resolve(
                primary,
                fallback=url,
                width=row.get("width"),
                height=row.get("height"),
                high_resolution=row.get("is_high_resolution"),
            )
            if is_placeholder(resolved.url):
                continue
            fallbacks[book_id] = FallbackCover(
                cover=resolved,
                grayscale=True if row.get("is_grayscale") else None,
            )

        log_elapsed(
            start,
            "fetch_fallback_covers",
            log=logger,
            extra={"requested": len(ids), "candidates": len(rows), "found": len(fallbacks)},
        )
        return fallbacks


def _as_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class CoverNormalizer:
    """Replaces unusable covers on card/list/detail records with fallbacks."""

    def __init__(self, fetcher: FallbackCoverFetcher, resolver: CoverUrlResolver):
        self._fetcher = fetcher
        self._resolver = resolver

    def normalize(self, records: Sequence[R]) -> List[R]:
        records = list(records)
        targets: Dict[UUID, None] = {}
        for record in records:
            if not needs_fallback(record.cover_url, self._resolver):
                continue
            book_id = _as_uuid(record.id)
            if book_id is not None:
                targets[book_id] = None

        fallbacks = self._fetcher.fetch_fallbacks(list(targets)) if targets else {}

        normalized = []
        for record in records:
            book_id = _as_uuid(record.id)
            candidate = fallbacks.get(book_id) if book_id in targets else None
            if candidate:
                normalized.append(self._apply(record, candidate))
            else:
                normalized.append(self._with_fallback_url(record))
        return normalized

    def normalize_one(self, record: R) -> R:
        return self.normalize([record])[0]

    @staticmethod
    def _with_fallback_url(record: R) -> R:
        # Every record leaves with a secondary URL the client can try
        if record.cover_fallback_url:
            return record
        return record.model_copy(update={"cover_fallback_url": record.cover_url})

    @staticmethod
    def _apply(record: R, candidate: FallbackCover) -> R:
        cover = candidate.cover
        return record.model_copy(
            update={
                "cover_url": cover.url,
                "cover_s3_key": cover.storage_key,
                "cover_fallback_url": record.cover_fallback_url or cover.url,
                "cover_width": cover.width,
                "cover_height": cover.height,
                "cover_high_resolution": cover.high_resolution,
                "cover_grayscale": candidate.grayscale,
            }
        )
