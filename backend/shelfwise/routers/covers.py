from fastapi import APIRouter, Depends, Query
from typing import Optional

from shelfwise.core.dependencies import get_cover_resolver, get_cover_scorer
from shelfwise.schemas.book import ResolvedCoverResponse
from shelfwise.services.cover_quality import CoverQualityScorer
from shelfwise.services.cover_resolver import CoverUrlResolver

router = APIRouter(prefix="/covers", tags=["covers"])


@router.get("/resolve", response_model=ResolvedCoverResponse)
def resolve_cover(
    primary: Optional[str] = Query(None, description="Storage key or URL"),
    fallback: Optional[str] = Query(None, description="External URL used when primary can't be served"),
    width: Optional[int] = Query(None, ge=0),
    height: Optional[int] = Query(None, ge=0),
    high_resolution: Optional[bool] = Query(None),
    grayscale: Optional[bool] = Query(None),
    resolver: CoverUrlResolver = Depends(get_cover_resolver),
    scorer: CoverQualityScorer = Depends(get_cover_scorer),
):
    """Resolve a raw cover reference the same way book responses do, plus its quality tier."""
    cover = resolver.resolve(primary, fallback, width, height, high_resolution)
    return ResolvedCoverResponse(
        url=cover.url,
        storage_key=cover.storage_key,
        from_storage=cover.from_storage,
        width=cover.width,
        height=cover.height,
        high_resolution=cover.high_resolution,
        grayscale=grayscale,
        quality=scorer.score_cover(cover, grayscale),
    )
