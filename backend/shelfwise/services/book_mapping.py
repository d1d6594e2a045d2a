"""
Maps raw book rows into card / list / detail records.

All three shapes share one cover path: pull a CoverReference out of the row,
resolve it, and copy the result into the common cover fields. Rows may come
from queries that don't select every column, so unknown columns read as
absent instead of raising.
"""
from typing import Any, Dict, List, Mapping, Optional

from shelfwise.schemas.book import BookCard, BookDetail, BookListItem
from shelfwise.services.cover_resolver import CoverReference, CoverUrlResolver
from shelfwise.utils.text import sanitize


def _get(row: Mapping[str, Any], key: str) -> Any:
    try:
        return row.get(key)
    except (AttributeError, KeyError):
        return None


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _bool_or_none(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "t", "1", "yes"):
            return True
        if lowered in ("false", "f", "0", "no"):
            return False
        return None
    return bool(value)


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v is not None and str(v).strip()]


def cover_reference_from_row(row: Mapping[str, Any]) -> CoverReference:
    return CoverReference(
        primary=sanitize(_get(row, "cover_s3_key")),
        fallback_external_url=sanitize(_get(row, "cover_fallback_url")),
        width=_int_or_none(_get(row, "cover_width")),
        height=_int_or_none(_get(row, "cover_height")),
        high_resolution=_bool_or_none(_get(row, "cover_is_high_resolution")),
        grayscale=_bool_or_none(_get(row, "cover_is_grayscale")),
    )


def cover_fields_from_row(row: Mapping[str, Any], resolver: CoverUrlResolver) -> Dict[str, Any]:
    """Resolve a row's raw cover columns into the shared cover field values."""
    reference = cover_reference_from_row(row)
    resolved = resolver.resolve_reference(reference)
    return {
        "cover_url": resolved.url,
        "cover_s3_key": resolved.storage_key,
        "cover_fallback_url": reference.fallback_external_url,
        "cover_width": resolved.width,
        "cover_height": resolved.height,
        "cover_high_resolution": resolved.high_resolution,
        "cover_grayscale": True if reference.grayscale else None,
    }


def _card_fields(row: Mapping[str, Any]) -> Dict[str, Any]:
    book_id = _get(row, "id")
    return {
        "id": str(book_id) if book_id is not None else "",
        "slug": _get(row, "slug"),
        "title": _get(row, "title") or "",
        "authors": _str_list(_get(row, "authors")),
        "average_rating": _get(row, "average_rating"),
        "ratings_count": _int_or_none(_get(row, "ratings_count")),
    }


def map_book_card(row: Mapping[str, Any], resolver: CoverUrlResolver) -> BookCard:
    return BookCard(**_card_fields(row), **cover_fields_from_row(row, resolver))


def map_book_list_item(row: Mapping[str, Any], resolver: CoverUrlResolver) -> BookListItem:
    return BookListItem(
        **_card_fields(row),
        **cover_fields_from_row(row, resolver),
        description=_get(row, "description"),
        categories=_str_list(_get(row, "categories")),
    )


def map_book_detail(row: Mapping[str, Any], resolver: CoverUrlResolver) -> BookDetail:
    cover = cover_fields_from_row(row, resolver)
    thumbnail_url = sanitize(_get(row, "thumbnail_url"))
    if cover["cover_fallback_url"] is None and thumbnail_url:
        cover["cover_fallback_url"] = thumbnail_url
    return BookDetail(
        **_card_fields(row),
        **cover,
        description=_get(row, "description"),
        categories=_str_list(_get(row, "categories")),
        publisher=_get(row, "publisher"),
        published_date=_get(row, "published_date"),
        language=_get(row, "language"),
        page_count=_int_or_none(_get(row, "page_count")),
        isbn_10=_get(row, "isbn_10"),
        isbn_13=_get(row, "isbn_13"),
        thumbnail_url=thumbnail_url,
    )
