"""
"Similar books" for a book detail page.

Recommendations are stored per source book, but the same work often exists as
several editions grouped into a work cluster. Rows for every cluster member
are fetched in one query and merged into a single list, with pipeline output
first and a small, capped share of same-author and same-category picks so
neither heuristic can crowd out the rest.
"""
import enum
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from uuid import UUID
import logging

from shelfwise.schemas.book import BookCard
from shelfwise.services.book_mapping import map_book_card
from shelfwise.services.book_queries import BookQueryRepository
from shelfwise.services.cover_fallback import CoverNormalizer
from shelfwise.utils.timing import log_elapsed, now_ms

logger = logging.getLogger(__name__)

MAX_SAME_AUTHOR = 3
MAX_SAME_CATEGORY = 3

# Upper bound on over-fetching across cluster members, as a multiple of limit
CLUSTER_FETCH_MULTIPLIER = 3


class RecommendationSource(str, enum.Enum):
    PIPELINE = "PIPELINE"
    SAME_AUTHOR = "SAME_AUTHOR"
    SAME_CATEGORY = "SAME_CATEGORY"
    OTHER = "OTHER"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "RecommendationSource":
        """Parse a stored source label. Unknown or missing labels are OTHER."""
        if not label:
            return cls.OTHER
        normalized = label.strip().upper()
        if normalized in ("PIPELINE", "RECOMMENDATION_PIPELINE"):
            return cls.PIPELINE
        try:
            return cls(normalized)
        except ValueError:
            return cls.OTHER


# Fill order for the merge, with the per-source cap (None = only the overall limit)
MERGE_PLAN = (
    (RecommendationSource.PIPELINE, None),
    (RecommendationSource.SAME_AUTHOR, MAX_SAME_AUTHOR),
    (RecommendationSource.SAME_CATEGORY, MAX_SAME_CATEGORY),
    (RecommendationSource.OTHER, None),
)


@dataclass(frozen=True)
class RecommendationCandidate:
    card: BookCard
    source: RecommendationSource
    score: Optional[float] = None
    reason: Optional[str] = None


def resolve_cluster_source_ids(queries: BookQueryRepository, book_id: UUID) -> List[UUID]:
    """
    IDs whose recommendation rows count for `book_id`.

    Order is [canonical member (if any), book_id, other members], without
    duplicates. A book outside any cluster resolves to [book_id]. A failed
    lookup raises ClusterResolutionError instead of narrowing the ID set.
    """
    members = queries.fetch_cluster_members(book_id)

    ordered: List[UUID] = []
    canonical = next((member_id for member_id, is_primary in members if is_primary), None)
    if canonical is not None:
        ordered.append(canonical)
    ordered.append(book_id)
    ordered.extend(member_id for member_id, _ in members)
    return list(dict.fromkeys(ordered))


def merge_recommendations(candidates: Iterable[RecommendationCandidate], limit: int) -> List[RecommendationCandidate]:
    if limit <= 0:
        return []

    buckets: Dict[RecommendationSource, List[RecommendationCandidate]] = {source: [] for source, _ in MERGE_PLAN}
    for candidate in candidates:
        buckets[candidate.source].append(candidate)

    merged: List[RecommendationCandidate] = []
    seen = set()
    for source, cap in MERGE_PLAN:
        taken = 0
        for candidate in buckets[source]:
            if len(merged) >= limit:
                return merged
            if cap is not None and taken >= cap:
                break
            card_id = (candidate.card.id or "").strip()
            if not card_id or card_id in seen:
                continue
            seen.add(card_id)
            merged.append(candidate)
            taken += 1
    return merged


class RecommendationService:
    def __init__(self, queries: BookQueryRepository, normalizer: CoverNormalizer):
        self._queries = queries
        self._normalizer = normalizer

    def fetch_recommendations(self, book_id: UUID, limit: int) -> List[RecommendationCandidate]:
        if limit <= 0:
            return []

        t0 = now_ms()
        source_ids = resolve_cluster_source_ids(self._queries, book_id)
        t1 = log_elapsed(t0, "resolve_cluster_source_ids", log=logger, extra={"book_id": str(book_id), "source_ids": len(source_ids)})

        fetch_limit = max(limit, min(limit * len(source_ids), limit * CLUSTER_FETCH_MULTIPLIER))
        rows = self._queries.fetch_recommendation_rows(source_ids, book_id, fetch_limit)
        t2 = log_elapsed(t1, "fetch_recommendation_rows", log=logger, extra={"book_id": str(book_id), "rows": len(rows)})

        if not rows:
            logger.info(f"No recommendations stored for book={book_id} (cluster size {len(source_ids)})")
            return []

        candidates = [
            RecommendationCandidate(
                card=map_book_card(row, self._queries.resolver),
                source=RecommendationSource.from_label(row.get("source")),
                score=row.get("score"),
                reason=row.get("reason"),
            )
            for row in rows
        ]
        merged = merge_recommendations(candidates, limit)

        cards = self._normalizer.normalize([candidate.card for candidate in merged])
        result = [
            RecommendationCandidate(card=card, source=candidate.source, score=candidate.score, reason=candidate.reason)
            for candidate, card in zip(merged, cards)
        ]
        log_elapsed(t2, "merge_and_normalize", log=logger, extra={"book_id": str(book_id), "returned": len(result)})
        return result

    def has_active_recommendations(self, book_id: UUID) -> bool:
        source_ids = resolve_cluster_source_ids(self._queries, book_id)
        return self._queries.has_active_recommendations(source_ids)
