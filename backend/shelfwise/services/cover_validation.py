"""
URL-pattern checks that detect title pages and interior scans served as covers.

Google Books sometimes answers a "frontcover" request with a title page,
copyright page or table of contents. Those URLs carry a telling `printsec`
value, and genuine Google covers carry `edge=curl`.
"""
from typing import Optional

NON_COVER_PAGE_PATTERNS = (
    "printsec=titlepage",
    "printsec=copyright",
    "printsec=toc",
    "printsec=index",
    "printsec=contents",
)

GOOGLE_BOOKS_HOST_MARKER = "books.google.com"
GOOGLE_COVER_MARKER = "edge=curl"


def has_non_cover_page_marker(url: Optional[str]) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return any(pattern in lowered for pattern in NON_COVER_PAGE_PATTERNS)


def is_google_books_url(url: Optional[str]) -> bool:
    return bool(url) and GOOGLE_BOOKS_HOST_MARKER in url.lower()


def rejection_reason(url: Optional[str]) -> Optional[str]:
    """Why a URL would be rejected as a cover, or None when it is accepted."""
    if not url or not url.strip():
        return "Empty or null URL"

    if has_non_cover_page_marker(url):
        return "Contains non-cover page pattern (title, copyright or contents page)"

    if is_google_books_url(url) and GOOGLE_COVER_MARKER not in url.lower():
        return "Google Books URL missing edge=curl parameter (likely interior page)"

    return None


def is_likely_cover_image(url: Optional[str]) -> bool:
    """S3, Open Library and other hosts are accepted unless they carry a non-cover marker."""
    return rejection_reason(url) is None
