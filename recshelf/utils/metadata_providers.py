"""
JSON catalog adapters (Google Books and Open Library).

Every adapter shares one contract: ``search(query)`` returns a list of
CatalogResult and never raises. A disabled adapter returns ``[]`` without
touching the network. Network, HTTP and parse errors are logged and turned
into an empty result.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

from recshelf.domain.models import CatalogResult, EnrichmentPass
from .book_utils import titles_match

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
DEFAULT_USER_AGENT = 'RecShelf/metadata-fetch'
SHORT_DESCRIPTION_LIMIT = 500

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"

BY_SEPARATOR = re.compile(r" by ", re.IGNORECASE)


def split_query(query: str) -> Tuple[str, Optional[str]]:
    """Split "Title by Author" into its parts; author is None when absent."""
    parts = BY_SEPARATOR.split(query, maxsplit=1)
    if len(parts) == 2:
        title, author = parts
        return title.strip(), author.strip() or None
    return query.strip(), None


def truncate_description(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    if len(text) > SHORT_DESCRIPTION_LIMIT:
        return text[:SHORT_DESCRIPTION_LIMIT] + "..."
    return text


class SourceAdapter:
    """Base class for one external metadata source."""

    name = "source"
    settings_flag = ""
    enrichment_pass = EnrichmentPass.CATALOG

    def __init__(self, settings: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        settings = settings or {}
        self.enabled = bool(settings.get(self.settings_flag, True)) if self.settings_flag else True
        self.timeout = settings.get('http_timeout') or DEFAULT_TIMEOUT
        self.user_agent = settings.get('user_agent') or DEFAULT_USER_AGENT
        self.debug = bool(settings.get('debug'))
        self.session = session or requests.Session()

    def search(self, query: str) -> List[CatalogResult]:
        if not self.enabled or not query or not query.strip():
            return []
        try:
            results = self._search(query.strip())
        except Exception as e:
            logger.warning(f"[METADATA][{self.name.upper()}][EXC] query={query!r} err={e}")
            return []
        if self.debug:
            logger.info(f"[METADATA][{self.name.upper()}] query={query!r} results={len(results)}")
        return results

    def _search(self, query: str) -> List[CatalogResult]:
        raise NotImplementedError

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None):
        merged = {'User-Agent': self.user_agent}
        if headers:
            merged.update(headers)
        resp = self.session.get(url, params=params, headers=merged, timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def close(self) -> None:
        self.session.close()


class GoogleBooksAdapter(SourceAdapter):
    name = "google_books"
    settings_flag = "enable_google_books"
    enrichment_pass = EnrichmentPass.CATALOG

    VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"

    def __init__(self, settings=None, session=None):
        super().__init__(settings, session)
        self.api_key = (settings or {}).get('google_books_api_key')

    def _search(self, query: str) -> List[CatalogResult]:
        title, author = split_query(query)
        q = f"intitle:{title} inauthor:{author}" if author else query
        params = {'q': q, 'maxResults': 40}
        if self.api_key:
            params['key'] = self.api_key
        data = self._get(self.VOLUMES_URL, params=params).json()
        return [self._to_result(item) for item in data.get('items') or []]

    def _to_result(self, item: Dict[str, Any]) -> CatalogResult:
        info = item.get('volumeInfo') or {}
        images = info.get('imageLinks') or {}
        full = info.get('description')
        return CatalogResult(
            id=item.get('id'),
            title=info.get('title') or UNKNOWN_TITLE,
            authors=", ".join(info.get('authors') or []) or UNKNOWN_AUTHOR,
            description=truncate_description(full),
            full_description=full,
            thumbnail_url=images.get('thumbnail') or images.get('smallThumbnail'),
            page_count=info.get('pageCount'),
            categories=", ".join(info.get('categories') or []) or None,
            publisher=info.get('publisher'),
            published_date=info.get('publishedDate'),
            language=info.get('language'),
            source=self.name,
        )

    def fetch_description(self, title: str, authors: Optional[str] = None) -> Optional[str]:
        """First matching volume that carries a full description."""
        query = f"{title} by {authors}" if authors else title
        for result in self.search(query):
            if result.full_description and titles_match(result.title, title):
                return result.full_description
        return None


class OpenLibraryAdapter(SourceAdapter):
    name = "open_library"
    settings_flag = "enable_open_library"
    enrichment_pass = EnrichmentPass.CATALOG

    SEARCH_URL = "https://openlibrary.org/search.json"
    WORK_URL = "https://openlibrary.org{key}.json"
    COVER_URL = "https://covers.openlibrary.org/b/id/{cover_id}-M.jpg"

    def _search_params(self, query: str, limit: int) -> Dict[str, Any]:
        title, author = split_query(query)
        params: Dict[str, Any] = {'limit': limit}
        if author:
            params.update(title=title, author=author)
        else:
            params['q'] = query
        return params

    def _search(self, query: str) -> List[CatalogResult]:
        data = self._get(self.SEARCH_URL, params=self._search_params(query, 40)).json()
        return [self._to_result(doc) for doc in data.get('docs') or []]

    def _to_result(self, doc: Dict[str, Any]) -> CatalogResult:
        first_sentence = doc.get('first_sentence')
        if isinstance(first_sentence, list):
            first_sentence = first_sentence[0] if first_sentence else None
        cover_id = doc.get('cover_i')
        year = doc.get('first_publish_year')
        return CatalogResult(
            id=doc.get('key'),
            title=doc.get('title') or UNKNOWN_TITLE,
            authors=", ".join(doc.get('author_name') or []) or UNKNOWN_AUTHOR,
            description=truncate_description(first_sentence),
            full_description=first_sentence,
            thumbnail_url=self.COVER_URL.format(cover_id=cover_id) if cover_id else None,
            page_count=doc.get('number_of_pages_median'),
            categories=", ".join((doc.get('subject') or [])[:3]) or None,
            publisher=(doc.get('publisher') or [None])[0],
            published_date=str(year) if year else None,
            language=(doc.get('language') or [None])[0],
            source=self.name,
        )

    def fetch_description(self, title: str, authors: Optional[str] = None) -> Optional[str]:
        """Search, then read the description from the matching work record."""
        if not self.enabled or not title:
            return None
        query = f"{title} by {authors}" if authors else title
        try:
            docs = self._get(self.SEARCH_URL, params=self._search_params(query, 5)).json().get('docs') or []
            doc = next((d for d in docs if titles_match(d.get('title'), title)), docs[0] if docs else None)
            if not doc or not doc.get('key'):
                return None
            work = self._get(self.WORK_URL.format(key=doc['key'])).json()
        except Exception as e:
            logger.warning(f"[METADATA][OPEN_LIBRARY][DESCRIPTION][EXC] title={title!r} err={e}")
            return None
        description = work.get('description')
        if isinstance(description, dict):
            description = description.get('value')
        return description or None
