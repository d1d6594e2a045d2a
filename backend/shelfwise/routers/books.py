from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
from uuid import UUID
import logging

from shelfwise.core.config import settings
from shelfwise.core.dependencies import (
    get_book_queries,
    get_cover_normalizer,
    get_cover_scorer,
    get_recommendation_service,
)
from shelfwise.schemas.book import BookCard, BookDetail
from shelfwise.schemas.recommendation import RecommendationCardResponse, RecommendationsResponse
from shelfwise.services.book_queries import BookQueryRepository, CoverLookupError
from shelfwise.services.cover_fallback import CoverNormalizer
from shelfwise.services.cover_quality import CoverQualityScorer
from shelfwise.services.recommendations import RecommendationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])


def _parse_ids(raw: str) -> List[UUID]:
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(UUID(part))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid book id: {part}",
            )
    return ids


def _with_quality(records, scorer: CoverQualityScorer):
    return [record.model_copy(update={"cover_quality": scorer.score_record(record)}) for record in records]


@router.get("", response_model=List[BookCard])
def get_books(
    ids: Optional[str] = Query(None, description="Comma-separated book IDs"),
    q: Optional[str] = Query(None, description="Search in title or slug"),
    limit: int = Query(50, ge=1, le=200),
    queries: BookQueryRepository = Depends(get_book_queries),
    normalizer: CoverNormalizer = Depends(get_cover_normalizer),
    scorer: CoverQualityScorer = Depends(get_cover_scorer),
):
    """Book cards with usable covers, best covers first."""
    if ids:
        cards = queries.fetch_book_cards(_parse_ids(ids)[:limit])
    else:
        cards = queries.search_book_cards(q, limit)

    try:
        cards = normalizer.normalize(cards)
    except CoverLookupError as e:
        # Serve the page with whatever covers the rows already had
        logger.warning(f"Cover fallback lookup failed, serving unnormalized covers: {e}", extra={"count": len(cards)})

    return scorer.sort_by_cover_quality(_with_quality(cards, scorer))


@router.get("/{book_id}", response_model=BookDetail)
def get_book(
    book_id: UUID,
    queries: BookQueryRepository = Depends(get_book_queries),
    normalizer: CoverNormalizer = Depends(get_cover_normalizer),
    scorer: CoverQualityScorer = Depends(get_cover_scorer),
):
    book = queries.fetch_book_detail(book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    book = normalizer.normalize_one(book)
    return book.model_copy(update={"cover_quality": scorer.score_record(book)})


@router.get("/{book_id}/similar", response_model=RecommendationsResponse)
def get_similar_books(
    book_id: UUID,
    limit: int = Query(settings.SIMILAR_BOOKS_LIMIT, ge=1, le=settings.MAX_SIMILAR_BOOKS),
    service: RecommendationService = Depends(get_recommendation_service),
    scorer: CoverQualityScorer = Depends(get_cover_scorer),
):
    """Merged recommendations across every edition in the book's work cluster."""
    candidates = service.fetch_recommendations(book_id, limit)
    items = [
        RecommendationCardResponse(
            card=candidate.card.model_copy(update={"cover_quality": scorer.score_record(candidate.card)}),
            score=candidate.score,
            reason=candidate.reason,
            source=candidate.source.value,
        )
        for candidate in candidates
    ]
    return RecommendationsResponse(book_id=str(book_id), items=items)
