from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, Float, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import sqlalchemy as sa
from shelfwise.database import Base


class Book(Base):
    __tablename__ = "books"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String, unique=True, index=True, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    authors = Column(JSON, nullable=True)  # ordered list of author names
    categories = Column(JSON, nullable=True)
    publisher = Column(String, nullable=True)
    published_date = Column(String, nullable=True)
    language = Column(String, nullable=True)
    page_count = Column(Integer, nullable=True)
    isbn_10 = Column(String, nullable=True)
    isbn_13 = Column(String, nullable=True)
    average_rating = Column(Float, nullable=True)
    ratings_count = Column(Integer, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    # Raw cover fields; resolved into a renderable URL at read time
    cover_s3_key = Column(String, nullable=True)
    cover_fallback_url = Column(String, nullable=True)
    cover_width = Column(Integer, nullable=True)
    cover_height = Column(Integer, nullable=True)
    cover_is_high_resolution = Column(Boolean, nullable=True)
    cover_is_grayscale = Column(Boolean, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    image_links = relationship("BookImageLink", back_populates="book")


class BookImageLink(Base):
    """
    One candidate cover image per (book, image_type).

    Rows come from provider metadata (Google Books imageLinks, Open Library)
    and are updated when the image is mirrored to S3 or fails to download.
    """
    __tablename__ = "book_image_links"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    image_type = Column(String, nullable=False)  # canonical | extraLarge | large | medium | small | thumbnail | smallThumbnail
    url = Column(String, nullable=True)
    s3_image_path = Column(String, nullable=True)
    source = Column(String, nullable=True)  # e.g. GOOGLE_BOOKS, OPEN_LIBRARY
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    is_high_resolution = Column(Boolean, nullable=True)
    is_grayscale = Column(Boolean, nullable=True)
    download_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("book_id", "image_type", name="uq_book_image_links_book_type"),
    )

    # Relationships
    book = relationship("Book", back_populates="image_links")


class WorkCluster(Base):
    """Groups books that are different editions of the same work. Written by the clustering job."""
    __tablename__ = "work_clusters"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    canonical_title = Column(String, nullable=False)
    canonical_author = Column(String, nullable=True)
    cluster_method = Column(String, nullable=False, default="ISBN_PREFIX")
    confidence_score = Column(Float, nullable=True, default=0.5)
    member_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    members = relationship("WorkClusterMember", back_populates="cluster")


class WorkClusterMember(Base):
    __tablename__ = "work_cluster_members"

    cluster_id = Column(Uuid, ForeignKey("work_clusters.id", ondelete="CASCADE"), primary_key=True)
    book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True, index=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cluster = relationship("WorkCluster", back_populates="members")


class BookRecommendation(Base):
    """Persisted "similar books" row produced by the recommendation pipeline."""
    __tablename__ = "book_recommendations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    recommended_book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    score = Column(Float, nullable=True)
    reason = Column(Text, nullable=True)
    source = Column(String, nullable=False, default="RECOMMENDATION_PIPELINE")
    generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        sa.Index("idx_book_recommendations_source_score", "source_book_id", "score"),
    )
