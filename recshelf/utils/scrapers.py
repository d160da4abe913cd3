"""
HTML-scraping adapters (Audible and Goodreads).

Markup on both sites drifts, so every field is looked up through a primary
selector and then fallbacks. A field that cannot be found stays None.
"""

from __future__ import annotations

import html
import logging
import re
from typing import List, Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from recshelf.domain.models import CatalogResult, EnrichmentPass, SeriesBook
from .metadata_providers import SourceAdapter, truncate_description

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
}


def select_first(node, selectors: Sequence[str]):
    """First element matched by the first selector that matches anything."""
    for selector in selectors:
        found = node.select_one(selector)
        if found is not None:
            return found
    return None


def node_text(node) -> Optional[str]:
    if node is None:
        return None
    text = re.sub(r"\s+", " ", node.get_text(" ", strip=True)).strip()
    return text or None


def strip_label(text: Optional[str], label: str) -> Optional[str]:
    if not text:
        return None
    cleaned = re.sub(rf"^\s*{re.escape(label)}\s*", "", text, flags=re.IGNORECASE).strip()
    return cleaned or None


def image_src(img) -> Optional[str]:
    if img is None:
        return None
    return img.get('src') or img.get('data-lazy') or None


class AudibleAdapter(SourceAdapter):
    name = "audible"
    settings_flag = "enable_audible"
    enrichment_pass = EnrichmentPass.AUDIO

    SEARCH_URL = "https://www.audible.com/search"
    PRODUCT_SELECTORS = (
        'li[class*="productListItem"]',
        'div[class*="adbl-impression-container"] li[class*="bc-list-item"]',
    )
    IMAGE_SELECTORS = ('img[class*="bc-image-inset-border"]', 'img')
    COVER_SIZES = re.compile(r"\._SL(?:300|175|100)_")

    def _search(self, query: str) -> List[CatalogResult]:
        resp = self._get(self.SEARCH_URL, params={'keywords': query}, headers=BROWSER_HEADERS)
        soup = BeautifulSoup(resp.text, "html.parser")
        product = select_first(soup, self.PRODUCT_SELECTORS)
        if product is None:
            return []
        result = self.parse_product(product)
        return [result] if result else []

    def parse_product(self, product) -> Optional[CatalogResult]:
        thumbnail = image_src(select_first(product, self.IMAGE_SELECTORS))
        if thumbnail:
            thumbnail = self.COVER_SIZES.sub("._SL500_", thumbnail)
        narrator = strip_label(node_text(product.select_one('li[class*="narratorLabel"]')), "Narrated by:")
        length = strip_label(node_text(product.select_one('li[class*="runtimeLabel"]')), "Length:")
        author = strip_label(node_text(product.select_one('li[class*="authorLabel"]')), "By:")
        title = node_text(select_first(product, ('h3 a', 'h2 a', 'h3')))
        if not any((thumbnail, narrator, length)):
            return None
        return CatalogResult(
            title=title,
            authors=author,
            thumbnail_url=thumbnail,
            narrator=narrator,
            listening_length=length,
            source=self.name,
        )


LANGUAGE_MARKERS = {
    'Spanish': ('spanish', 'español', 'edición'),
    'French': ('french', 'français', 'édition'),
    'German': ('german', 'deutsch', 'ausgabe'),
    'Italian': ('italian', 'italiano', 'edizione'),
    'Portuguese': ('portuguese', 'português', 'edição'),
    'Japanese': ('japanese', '日本語'),
    'Chinese': ('chinese', '中文'),
}
COLLECTION_WORDS = ('collection', 'omnibus', 'box set', 'boxed set')
SERIES_SUFFIX_RE = re.compile(r"\s*\([^)]*#[^)]*\)\s*$")
SERIES_NUMBER_RE = re.compile(r"#(\d+(?:\.\d+)?)")
BOOK_HEADING_RE = re.compile(r"\bBook\s+(\d+(?:\.\d+)?)", re.IGNORECASE)


def detect_language(text: Optional[str]) -> str:
    lowered = (text or "").lower()
    for language, markers in LANGUAGE_MARKERS.items():
        if any(marker in lowered for marker in markers):
            return language
    return 'English'


class GoodreadsAdapter(SourceAdapter):
    name = "goodreads"
    settings_flag = "enable_goodreads"
    enrichment_pass = EnrichmentPass.COVER_FALLBACK

    BASE_URL = "https://www.goodreads.com"
    SEARCH_URL = "https://www.goodreads.com/search"
    RESULT_SELECTORS = ('table.tableList tr', 'div[class*="BookListItem"]')
    IMAGE_SELECTORS = ('img[class*="bookCover"]', 'img')
    LINK_SELECTORS = ('a.bookTitle', 'a[href*="/book/show/"]')
    DESCRIPTION_SELECTORS = ('div#description span:last-of-type', 'div[class*="DetailsLayoutRightParagraph"]')
    RATING_SELECTORS = ('div[class*="RatingStatistics__rating"]', 'span[itemprop="ratingValue"]')
    SERIES_BOOK_SELECTORS = ('div[itemtype*="Book"]', 'div[class*="responsiveBook"]')
    COVER_UPGRADES = (
        ("._SY75_", "._SY475_"),
        ("._SX50_", "._SX318_"),
        ("._SY98_", "._SY475_"),
        ("/nophoto/", "/photo/"),
    )

    def _soup(self, url: str, params=None) -> BeautifulSoup:
        resp = self._get(url, params=params, headers=BROWSER_HEADERS)
        return BeautifulSoup(resp.text, "html.parser")

    def upgrade_cover(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return url
        for small, large in self.COVER_UPGRADES:
            url = url.replace(small, large)
        return url

    def _absolute(self, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        return urljoin(self.BASE_URL, href)

    def _first_result(self, query: str):
        soup = self._soup(self.SEARCH_URL, params={'q': query})
        return select_first(soup, self.RESULT_SELECTORS)

    def _search(self, query: str) -> List[CatalogResult]:
        row = self._first_result(query)
        if row is None:
            return []
        link = select_first(row, self.LINK_SELECTORS)
        result = CatalogResult(
            title=node_text(link),
            authors=node_text(row.select_one('a.authorName')),
            thumbnail_url=self.upgrade_cover(image_src(select_first(row, self.IMAGE_SELECTORS))),
            source=self.name,
        )
        book_url = self._absolute(link.get('href') if link else None)
        if book_url:
            try:
                self._fill_from_detail(result, self._soup(book_url))
            except Exception as e:
                # Keep the cover from the search row even if the detail page fails
                logger.warning(f"[METADATA][GOODREADS][DETAIL][EXC] url={book_url} err={e}")
        return [result]

    def _fill_from_detail(self, result: CatalogResult, soup: BeautifulSoup) -> None:
        description = node_text(select_first(soup, self.DESCRIPTION_SELECTORS))
        if description:
            result.full_description = description
            result.description = truncate_description(description)
        result.average_rating = node_text(select_first(soup, self.RATING_SELECTORS))

    def get_series_books(self, series_name: str, first_book_title: str) -> List[SeriesBook]:
        """Books listed on the series page reached from the first book's detail page."""
        if not self.enabled:
            return []
        query = f"{first_book_title} {series_name}".strip()
        try:
            row = self._first_result(query)
            link = select_first(row, self.LINK_SELECTORS) if row is not None else None
            book_url = self._absolute(link.get('href') if link else None)
            if not book_url:
                logger.info(f"[METADATA][GOODREADS][SERIES] no search hit for {query!r}")
                return []
            series_link = self._soup(book_url).select_one('a[href*="/series/"]')
            series_url = self._absolute(series_link.get('href') if series_link else None)
            if not series_url:
                logger.info(f"[METADATA][GOODREADS][SERIES] no series link on {book_url}")
                return []
            return self.parse_series_page(self._soup(series_url))
        except Exception as e:
            logger.warning(f"[METADATA][GOODREADS][SERIES][EXC] series={series_name!r} err={e}")
            return []

    def parse_series_page(self, soup: BeautifulSoup) -> List[SeriesBook]:
        nodes = []
        for selector in self.SERIES_BOOK_SELECTORS:
            nodes = soup.select(selector)
            if nodes:
                break

        books: List[SeriesBook] = []
        target_language = None
        for node in nodes:
            raw_title = node_text(select_first(node, ('a.bookTitle', 'a[class*="gr-h3"]')))
            if not raw_title:
                continue
            raw_title = html.unescape(raw_title)
            if any(word in raw_title.lower() for word in COLLECTION_WORDS):
                continue

            details = node_text(node.select_one('div[class*="bookDetails"]')) or ""
            language = detect_language(details)
            if target_language is None:
                target_language = language
            elif language != target_language:
                continue

            m = SERIES_NUMBER_RE.search(raw_title) or BOOK_HEADING_RE.search(node_text(node) or "")
            order = float(m.group(1)) if m else float(len(books) + 1)
            books.append(SeriesBook(
                title=SERIES_SUFFIX_RE.sub("", raw_title).strip(),
                authors=html.unescape(node_text(node.select_one('a.authorName')) or ""),
                order=order,
                thumbnail_url=self.upgrade_cover(image_src(node.select_one('img'))),
            ))

        books.sort(key=lambda b: b.order)
        return books
