from pydantic import BaseModel, ConfigDict
from typing import Optional


class CoverFields(BaseModel):
    """Cover fields shared by every book shape (card, list item, detail)."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    cover_url: str
    cover_s3_key: Optional[str] = None
    cover_fallback_url: Optional[str] = None
    cover_width: Optional[int] = None
    cover_height: Optional[int] = None
    cover_high_resolution: Optional[bool] = None
    cover_grayscale: Optional[bool] = None
    cover_quality: Optional[int] = None  # 0-5 tier, filled in by the serving layer


class BookCard(CoverFields):
    id: str
    slug: Optional[str] = None
    title: str
    authors: list[str] = []
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None


class BookListItem(BookCard):
    description: Optional[str] = None
    categories: list[str] = []


class BookDetail(BookListItem):
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    language: Optional[str] = None
    page_count: Optional[int] = None
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    thumbnail_url: Optional[str] = None


class ResolvedCoverResponse(BaseModel):
    url: str
    storage_key: Optional[str] = None
    from_storage: bool
    width: int
    height: int
    high_resolution: bool
    grayscale: Optional[bool] = None
    quality: int
