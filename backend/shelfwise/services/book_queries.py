"""
Batch read queries for the catalog.

Every method issues a single round-trip for the whole ID set. Datastore
failures are logged and re-raised as DatastoreError subclasses so callers can
tell "no rows" apart from "the query failed".
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID
import logging

from sqlalchemy import and_, case, func, literal, not_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from shelfwise.models import Book, BookImageLink, BookRecommendation, WorkClusterMember
from shelfwise.schemas.book import BookCard, BookDetail, BookListItem
from shelfwise.services.book_mapping import map_book_card, map_book_detail, map_book_list_item
from shelfwise.services.cover_dimensions import (
    IMAGE_TYPE_PRIORITY,
    MAX_ASPECT_RATIO,
    MIN_ASPECT_RATIO,
    MIN_DISPLAY_HEIGHT,
    MIN_DISPLAY_WIDTH,
    UNKNOWN_IMAGE_TYPE_PRIORITY,
)
from shelfwise.services.cover_resolver import CoverUrlResolver
from shelfwise.services.cover_validation import NON_COVER_PAGE_PATTERNS
from shelfwise.utils.text import PLACEHOLDER_MARKER

logger = logging.getLogger(__name__)


class DatastoreError(Exception):
    """A catalog query failed; distinct from a query that returned no rows."""
    pass


class BookLookupError(DatastoreError):
    pass


class CoverLookupError(DatastoreError):
    pass


class ClusterResolutionError(DatastoreError):
    pass


class RecommendationFetchError(DatastoreError):
    pass


RowMap = Dict[str, object]


class BookQueryRepository:
    def __init__(self, db: Session, resolver: Optional[CoverUrlResolver] = None):
        self.db = db
        self.resolver = resolver or CoverUrlResolver()

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def fetch_book_rows(self, book_ids: Sequence[UUID]) -> List[RowMap]:
        """Book rows for the given IDs, in the order the IDs were given."""
        ids = list(dict.fromkeys(book_ids))
        if not ids:
            return []
        try:
            rows = self.db.execute(
                select(Book.__table__).where(Book.id.in_(ids))
            ).mappings().all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch %d book rows: %s", len(ids), e, exc_info=True)
            raise BookLookupError(f"Book row query failed for {len(ids)} books") from e

        by_id = {row["id"]: dict(row) for row in rows}
        return [by_id[book_id] for book_id in ids if book_id in by_id]

    def fetch_book_row(self, book_id: UUID) -> Optional[RowMap]:
        rows = self.fetch_book_rows([book_id])
        return rows[0] if rows else None

    def search_book_rows(self, q: Optional[str], limit: int) -> List[RowMap]:
        """Case-insensitive title/slug search, newest first when no query is given."""
        stmt = select(Book.__table__)
        if q and q.strip():
            term = f"%{q.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Book.title).like(term),
                    func.lower(func.coalesce(Book.slug, "")).like(term),
                )
            ).order_by(Book.title.asc())
        else:
            stmt = stmt.order_by(Book.created_at.desc(), Book.title.asc())
        try:
            rows = self.db.execute(stmt.limit(limit)).mappings().all()
        except SQLAlchemyError as e:
            logger.error("Failed to search books (q=%r): %s", q, e, exc_info=True)
            raise BookLookupError("Book search query failed") from e
        return [dict(row) for row in rows]

    def fetch_book_cards(self, book_ids: Sequence[UUID]) -> List[BookCard]:
        return [map_book_card(row, self.resolver) for row in self.fetch_book_rows(book_ids)]

    def fetch_book_list_items(self, book_ids: Sequence[UUID]) -> List[BookListItem]:
        return [map_book_list_item(row, self.resolver) for row in self.fetch_book_rows(book_ids)]

    def fetch_book_detail(self, book_id: UUID) -> Optional[BookDetail]:
        row = self.fetch_book_row(book_id)
        if row is None:
            return None
        return map_book_detail(row, self.resolver)

    def search_book_cards(self, q: Optional[str], limit: int) -> List[BookCard]:
        return [map_book_card(row, self.resolver) for row in self.search_book_rows(q, limit)]

    # ------------------------------------------------------------------
    # Cover fallbacks
    # ------------------------------------------------------------------

    def fetch_fallback_image_rows(self, book_ids: Sequence[UUID]) -> List[RowMap]:
        """
        Candidate image rows for books whose primary cover is unusable.

        Rows with a download error, placeholder images, title/copyright/TOC
        pages, or (when dimensions are known) undersized or off-aspect images
        are filtered out here. Rows come back ordered by book, then image type
        priority, then newest first, so the first row per book is its best
        candidate.
        """
        ids = list(dict.fromkeys(book_ids))
        if not ids:
            return []

        link = BookImageLink
        lowered_url = func.lower(func.coalesce(link.url, ""))
        lowered_path = func.lower(func.coalesce(link.s3_image_path, ""))
        type_priority = case(
            IMAGE_TYPE_PRIORITY,
            value=func.lower(link.image_type),
            else_=UNKNOWN_IMAGE_TYPE_PRIORITY,
        )

        stmt = (
            select(
                link.book_id,
                link.image_type,
                link.url,
                link.s3_image_path,
                link.width,
                link.height,
                link.is_high_resolution,
                link.is_grayscale,
                link.created_at,
            )
            .where(
                link.book_id.in_(ids),
                link.download_error.is_(None),
                or_(
                    and_(link.url.isnot(None), link.url != ""),
                    and_(link.s3_image_path.isnot(None), link.s3_image_path != ""),
                ),
                not_(lowered_url.contains(PLACEHOLDER_MARKER)),
                not_(lowered_path.contains(PLACEHOLDER_MARKER)),
                *[not_(lowered_url.contains(pattern)) for pattern in NON_COVER_PAGE_PATTERNS],
                or_(
                    link.width.is_(None),
                    link.height.is_(None),
                    and_(
                        link.width >= MIN_DISPLAY_WIDTH,
                        link.height >= MIN_DISPLAY_HEIGHT,
                        link.height >= link.width * MIN_ASPECT_RATIO,
                        link.height <= link.width * MAX_ASPECT_RATIO,
                    ),
                ),
            )
            .order_by(link.book_id, type_priority, link.created_at.desc())
        )

        try:
            rows = self.db.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch fallback cover rows for %d books: %s", len(ids), e, exc_info=True)
            raise CoverLookupError(f"Cover fallback query failed for {len(ids)} books") from e
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Work clusters
    # ------------------------------------------------------------------

    def fetch_cluster_members(self, book_id: UUID) -> List[Tuple[UUID, bool]]:
        """(member_id, is_primary) for every cluster containing the book, primary first."""
        this_member = aliased(WorkClusterMember)
        other_member = aliased(WorkClusterMember)
        stmt = (
            select(other_member.book_id, other_member.is_primary)
            .join(this_member, this_member.cluster_id == other_member.cluster_id)
            .where(this_member.book_id == book_id)
            .order_by(other_member.is_primary.desc(), other_member.created_at.asc(), other_member.book_id.asc())
        )
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error("Failed to resolve cluster members for %s: %s", book_id, e, exc_info=True)
            raise ClusterResolutionError(f"Cluster source ID resolution failed for {book_id}") from e
        return [(row[0], bool(row[1])) for row in rows]

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def fetch_recommendation_rows(
        self,
        source_ids: Sequence[UUID],
        primary_id: UUID,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[RowMap]:
        """
        Recommended book rows plus `score`, `reason` and `source`.

        Ordering: rows for the requested book before other cluster members,
        active before expired, score descending (nulls last), most recently
        generated first. Expired rows stay eligible so the section is not
        empty while a refresh job lags.
        """
        ids = list(dict.fromkeys(source_ids))
        if not ids or limit <= 0:
            return []
        now = now or datetime.utcnow()
        rec = BookRecommendation

        stmt = (
            select(Book.__table__, rec.score, rec.reason, rec.source)
            .select_from(rec)
            .join(Book, Book.id == rec.recommended_book_id)
            .where(
                rec.source_book_id.in_(ids),
                rec.recommended_book_id.notin_(ids),
            )
            .order_by(
                case((rec.source_book_id == primary_id, 0), else_=1),
                case((or_(rec.expires_at.is_(None), rec.expires_at > now), 0), else_=1),
                case((rec.score.is_(None), 1), else_=0),
                rec.score.desc(),
                rec.generated_at.desc(),
            )
            .limit(limit)
        )
        try:
            rows = self.db.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch recommendation rows for %s: %s", primary_id, e, exc_info=True)
            raise RecommendationFetchError(f"Recommendation query failed for {primary_id}") from e
        return [dict(row) for row in rows]

    def has_active_recommendations(self, source_ids: Sequence[UUID], now: Optional[datetime] = None) -> bool:
        ids = list(dict.fromkeys(source_ids))
        if not ids:
            return False
        now = now or datetime.utcnow()
        rec = BookRecommendation
        stmt = (
            select(literal(1))
            .select_from(rec)
            .where(
                rec.source_book_id.in_(ids),
                or_(rec.expires_at.is_(None), rec.expires_at > now),
            )
            .limit(1)
        )
        try:
            return self.db.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error("Failed to check active recommendations for %s: %s", ids[0], e, exc_info=True)
            raise RecommendationFetchError(f"Active recommendation check failed for {ids[0]}") from e
