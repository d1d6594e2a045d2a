"""FastAPI dependencies that assemble the cover and recommendation services per request."""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from shelfwise.core.config import settings
from shelfwise.database import get_db
from shelfwise.services.book_queries import BookQueryRepository
from shelfwise.services.cover_fallback import CoverNormalizer, FallbackCoverFetcher
from shelfwise.services.cover_quality import CoverQualityScorer
from shelfwise.services.cover_resolver import CoverUrlResolver
from shelfwise.services.recommendations import RecommendationService


@lru_cache
def get_cover_resolver() -> CoverUrlResolver:
    # CDN settings are read once per process
    return CoverUrlResolver(settings.cdn_config)


def get_cover_scorer(resolver: CoverUrlResolver = Depends(get_cover_resolver)) -> CoverQualityScorer:
    return CoverQualityScorer(resolver)


def get_book_queries(
    db: Session = Depends(get_db),
    resolver: CoverUrlResolver = Depends(get_cover_resolver),
) -> BookQueryRepository:
    return BookQueryRepository(db, resolver)


def get_cover_normalizer(
    queries: BookQueryRepository = Depends(get_book_queries),
    resolver: CoverUrlResolver = Depends(get_cover_resolver),
) -> CoverNormalizer:
    return CoverNormalizer(FallbackCoverFetcher(queries, resolver), resolver)


def get_recommendation_service(
    queries: BookQueryRepository = Depends(get_book_queries),
    normalizer: CoverNormalizer = Depends(get_cover_normalizer),
) -> RecommendationService:
    return RecommendationService(queries, normalizer)
