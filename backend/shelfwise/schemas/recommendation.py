from pydantic import BaseModel
from typing import Optional, List
from shelfwise.schemas.book import BookCard


class RecommendationCardResponse(BaseModel):
    card: BookCard
    score: Optional[float] = None
    reason: Optional[str] = None
    source: str  # PIPELINE | SAME_AUTHOR | SAME_CATEGORY | OTHER


class RecommendationsResponse(BaseModel):
    book_id: str
    items: List[RecommendationCardResponse]
