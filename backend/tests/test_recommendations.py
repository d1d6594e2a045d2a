"""Tests for work-cluster resolution, recommendation merging and the similar-books service."""
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from shelfwise.schemas.book import BookCard
from shelfwise.services.book_queries import BookQueryRepository, ClusterResolutionError, RecommendationFetchError
from shelfwise.services.cover_fallback import CoverNormalizer, FallbackCoverFetcher
from shelfwise.services.recommendations import (
    RecommendationCandidate,
    RecommendationService,
    RecommendationSource,
    merge_recommendations,
    resolve_cluster_source_ids,
)
from shelfwise.utils.text import PLACEHOLDER_COVER_PATH


@pytest.mark.parametrize(
    "label, expected",
    [
        ("PIPELINE", RecommendationSource.PIPELINE),
        ("recommendation_pipeline", RecommendationSource.PIPELINE),
        (" same_author ", RecommendationSource.SAME_AUTHOR),
        ("Same_Category", RecommendationSource.SAME_CATEGORY),
        ("OTHER", RecommendationSource.OTHER),
        ("EDITORIAL", RecommendationSource.OTHER),
        ("", RecommendationSource.OTHER),
        (None, RecommendationSource.OTHER),
    ],
)
def test_source_from_label(label, expected):
    assert RecommendationSource.from_label(label) is expected


def _candidate(card_id, source, score=None):
    card = BookCard(id=card_id, title=f"Book {card_id}", cover_url=PLACEHOLDER_COVER_PATH)
    return RecommendationCandidate(card=card, source=source, score=score)


def test_merge_caps_and_dedupes():
    candidates = (
        [_candidate(f"p{i}", RecommendationSource.PIPELINE) for i in range(5)]
        # overlaps with the pipeline picks
        + [_candidate("p0", RecommendationSource.SAME_AUTHOR)]
        + [_candidate(f"a{i}", RecommendationSource.SAME_AUTHOR) for i in range(4)]
        + [_candidate(f"c{i}", RecommendationSource.SAME_CATEGORY) for i in range(5)]
    )
    merged = merge_recommendations(candidates, limit=6)

    ids = [c.card.id for c in merged]
    assert len(merged) == 6
    assert len(set(ids)) == 6
    assert ids == ["p0", "p1", "p2", "p3", "p4", "a0"]
    assert merged[-1].source is RecommendationSource.SAME_AUTHOR


def test_merge_fill_order_and_caps():
    candidates = (
        [_candidate(f"o{i}", RecommendationSource.OTHER) for i in range(5)]
        + [_candidate(f"c{i}", RecommendationSource.SAME_CATEGORY) for i in range(5)]
        + [_candidate(f"a{i}", RecommendationSource.SAME_AUTHOR) for i in range(5)]
        + [_candidate("p0", RecommendationSource.PIPELINE)]
    )
    ids = [c.card.id for c in merge_recommendations(candidates, limit=12)]
    assert ids == ["p0", "a0", "a1", "a2", "c0", "c1", "c2", "o0", "o1", "o2", "o3", "o4"]


def test_merge_pipeline_is_uncapped():
    candidates = [_candidate(f"p{i}", RecommendationSource.PIPELINE) for i in range(10)]
    assert len(merge_recommendations(candidates, limit=8)) == 8


def test_merge_skips_blank_ids_and_handles_empty_input():
    candidates = [_candidate("", RecommendationSource.PIPELINE), _candidate("  ", RecommendationSource.OTHER)]
    assert merge_recommendations(candidates, limit=5) == []
    assert merge_recommendations([], limit=5) == []
    assert merge_recommendations([_candidate("x", RecommendationSource.PIPELINE)], limit=0) == []


def test_cluster_ids_put_canonical_first(db, make_book, make_cluster):
    canonical = make_book("Canonical edition")
    requested = make_book("Paperback")
    other = make_book("Audio")
    make_cluster([canonical, requested, other], primary=canonical)

    ids = resolve_cluster_source_ids(BookQueryRepository(db), requested.id)
    assert ids[:2] == [canonical.id, requested.id]
    assert set(ids) == {canonical.id, requested.id, other.id}
    assert len(ids) == 3


def test_cluster_ids_when_requested_book_is_canonical(db, make_book, make_cluster):
    canonical = make_book("Canonical edition")
    other = make_book("Reprint")
    make_cluster([canonical, other], primary=canonical)

    assert resolve_cluster_source_ids(BookQueryRepository(db), canonical.id) == [canonical.id, other.id]


def test_book_outside_any_cluster_resolves_to_itself(db, make_book):
    book = make_book("Standalone")
    assert resolve_cluster_source_ids(BookQueryRepository(db), book.id) == [book.id]


class FailingClusterQueries:
    def fetch_cluster_members(self, book_id):
        raise ClusterResolutionError(f"lookup failed for {book_id}")


def test_cluster_lookup_failure_is_not_an_empty_list():
    with pytest.raises(ClusterResolutionError):
        resolve_cluster_source_ids(FailingClusterQueries(), uuid4())


@pytest.fixture
def service(db, cdn_resolver):
    queries = BookQueryRepository(db, cdn_resolver)
    normalizer = CoverNormalizer(FallbackCoverFetcher(queries, cdn_resolver), cdn_resolver)
    return RecommendationService(queries, normalizer)


def test_fetch_recommendations_across_cluster(service, make_book, make_cluster, make_recommendation):
    requested = make_book("Hardcover")
    sibling = make_book("Paperback")
    make_cluster([requested, sibling], primary=requested)
    a = make_book("A", cover_s3_key="covers/a.jpg")
    b = make_book("B")
    c = make_book("C")

    make_recommendation(sibling, c, score=0.99, source="RECOMMENDATION_PIPELINE")
    make_recommendation(requested, a, score=0.5, source="RECOMMENDATION_PIPELINE")
    make_recommendation(requested, b, score=0.9, source="SAME_AUTHOR")
    # another edition of the same work is never recommended
    make_recommendation(requested, sibling, score=1.0, source="RECOMMENDATION_PIPELINE")

    results = service.fetch_recommendations(requested.id, limit=6)

    assert [r.card.title for r in results] == ["A", "C", "B"]
    assert [r.source for r in results] == [
        RecommendationSource.PIPELINE,
        RecommendationSource.PIPELINE,
        RecommendationSource.SAME_AUTHOR,
    ]
    assert results[0].score == 0.5
    assert results[0].card.cover_url == "https://cdn.example.com/covers/a.jpg"


def test_active_rows_rank_before_expired(service, make_book, make_recommendation):
    book = make_book("Source")
    fresh = make_book("Fresh")
    stale = make_book("Stale")
    now = datetime.utcnow()
    make_recommendation(book, stale, score=0.99, expires_at=now - timedelta(days=1))
    make_recommendation(book, fresh, score=0.1, expires_at=now + timedelta(days=30))

    titles = [r.card.title for r in service.fetch_recommendations(book.id, limit=6)]
    # expired rows stay as a fallback
    assert titles == ["Fresh", "Stale"]


def test_null_scores_rank_last(service, make_book, make_recommendation):
    book = make_book("Source")
    unscored = make_book("Unscored")
    scored = make_book("Scored")
    make_recommendation(book, unscored, score=None)
    make_recommendation(book, scored, score=0.2)

    assert [r.card.title for r in service.fetch_recommendations(book.id, limit=6)] == ["Scored", "Unscored"]


def test_recommendation_covers_are_normalized(service, make_book, make_image_link, make_recommendation):
    book = make_book("Source")
    target = make_book("No cover")
    make_image_link(target, "large", url="https://img.example.com/large.jpg")
    make_recommendation(book, target, score=0.5)

    [result] = service.fetch_recommendations(book.id, limit=6)
    assert result.card.cover_url == "https://img.example.com/large.jpg"


def test_no_rows_is_an_empty_list(service, make_book):
    assert service.fetch_recommendations(make_book("Lonely").id, limit=6) == []


def test_non_positive_limit_returns_nothing(service, make_book):
    assert service.fetch_recommendations(make_book("Any").id, limit=0) == []


def test_has_active_recommendations(service, make_book, make_recommendation):
    book = make_book("Source")
    target = make_book("Target")
    assert service.has_active_recommendations(book.id) is False

    make_recommendation(book, target, expires_at=datetime.utcnow() - timedelta(hours=1))
    assert service.has_active_recommendations(book.id) is False

    make_recommendation(make_book("Other source"), target)
    make_recommendation(book, make_book("Second target"))
    assert service.has_active_recommendations(book.id) is True


class RecordingRecommendationQueries:
    def __init__(self, members):
        self.members = members
        self.limits = []

    def fetch_cluster_members(self, book_id):
        return self.members

    def fetch_recommendation_rows(self, source_ids, primary_id, limit):
        self.limits.append(limit)
        return []


@pytest.mark.parametrize(
    "cluster_size, limit, expected",
    [(0, 6, 6), (2, 6, 12), (5, 6, 18), (10, 4, 12)],
)
def test_fetch_limit_scales_with_cluster(cdn_resolver, cluster_size, limit, expected):
    book_id = uuid4()
    members = [(book_id, False)] + [(uuid4(), False) for _ in range(cluster_size - 1)] if cluster_size else []
    queries = RecordingRecommendationQueries(members)
    service = RecommendationService(queries, normalizer=None)
    assert service.fetch_recommendations(book_id, limit) == []
    assert queries.limits == [expected]


class FailingRecommendationQueries(RecordingRecommendationQueries):
    def fetch_recommendation_rows(self, source_ids, primary_id, limit):
        raise RecommendationFetchError("query failed")


def test_fetch_failure_propagates():
    service = RecommendationService(FailingRecommendationQueries([]), normalizer=None)
    with pytest.raises(RecommendationFetchError):
        service.fetch_recommendations(uuid4(), 6)
