from bs4 import BeautifulSoup

from recshelf.utils.scrapers import AudibleAdapter, GoodreadsAdapter, detect_language, strip_label

from conftest import DummyResponse, FakeSession


AUDIBLE_FALLBACK_HTML = """
<div class="adbl-impression-container">
  <ul>
    <li class="bc-list-item">
      <img class="bc-pub-block bc-image-inset-border" src="https://m.media-amazon.com/images/I/phm._SL175_.jpg">
      <h3><a href="/pd/Project-Hail-Mary">Project Hail Mary</a></h3>
      <ul>
        <li class="authorLabel"><span>By:</span> <a>Andy Weir</a></li>
        <li class="narratorLabel"><span>Narrated by:</span> <a>Ray Porter</a></li>
        <li class="runtimeLabel"><span>Length: 16 hrs and 10 mins</span></li>
      </ul>
    </li>
  </ul>
</div>
"""

AUDIBLE_PRIMARY_HTML = """
<ul>
  <li class="productListItem">
    <img data-lazy="https://m.media-amazon.com/images/I/dune._SL300_.jpg">
    <h3><a>Dune</a></h3>
    <ul><li class="narratorLabel">Narrated by: Scott Brick</li></ul>
  </li>
</ul>
"""

GOODREADS_SEARCH_HTML = """
<table class="tableList">
  <tr itemscope>
    <td><img class="bookCover" src="https://i.gr-assets.com/images/S/fe._SY75_.jpg"></td>
    <td>
      <a class="bookTitle" href="/book/show/68428.The_Final_Empire"><span>The Final Empire (Mistborn, #1)</span></a>
      <a class="authorName" href="/author/show/38550"><span>Brandon Sanderson</span></a>
    </td>
  </tr>
</table>
"""

GOODREADS_DETAIL_HTML = """
<div id="description"><span>For a thousand years...</span><span>For a thousand years the ash fell.</span></div>
<span itemprop="ratingValue">4.47</span>
<a href="/series/40910-mistborn">Mistborn #1</a>
"""

GOODREADS_SERIES_HTML = """
<div itemtype="http://schema.org/Book">
  <a class="bookTitle"><span>The Final Empire (Mistborn, #1)</span></a>
  <a class="authorName"><span>Brandon Sanderson</span></a>
  <img src="https://i.gr-assets.com/images/S/fe._SX50_.jpg">
  <div class="bookDetails">4.47 avg rating, published 2006</div>
</div>
<div itemtype="http://schema.org/Book">
  <a class="bookTitle"><span>The Hero of Ages (Mistborn, #3)</span></a>
  <a class="authorName"><span>Brandon Sanderson</span></a>
  <div class="bookDetails">4.49 avg rating, published 2008</div>
</div>
<div itemtype="http://schema.org/Book">
  <a class="bookTitle"><span>Mistborn Trilogy Boxed Set (Mistborn, #1-3)</span></a>
  <div class="bookDetails">published 2009</div>
</div>
<div itemtype="http://schema.org/Book">
  <a class="bookTitle"><span>El imperio final (Nacidos de la bruma, #1)</span></a>
  <div class="bookDetails">Edición española, published 2008</div>
</div>
<div itemtype="http://schema.org/Book">
  <a class="bookTitle"><span>The Well of Ascension (Mistborn, #2)</span></a>
  <a class="authorName"><span>Brandon Sanderson</span></a>
  <div class="bookDetails">4.38 avg rating, published 2007</div>
</div>
<div itemtype="http://schema.org/Book">
  <h3>Book 3.5</h3>
  <a class="bookTitle"><span>Secret History</span></a>
  <div class="bookDetails">published 2016</div>
</div>
"""

BOOK_URL = "https://www.goodreads.com/book/show/68428.The_Final_Empire"
SERIES_URL = "https://www.goodreads.com/series/40910-mistborn"


def _goodreads_handler(detail_status=200):
    def handler(url, params):
        if url == GoodreadsAdapter.SEARCH_URL:
            return DummyResponse(text=GOODREADS_SEARCH_HTML)
        if url == BOOK_URL:
            return DummyResponse(text=GOODREADS_DETAIL_HTML, status_code=detail_status)
        if url == SERIES_URL:
            return DummyResponse(text=GOODREADS_SERIES_HTML)
        return DummyResponse(status_code=404)
    return handler


def test_strip_label():
    assert strip_label("Narrated by: Ray Porter", "Narrated by:") == "Ray Porter"
    assert strip_label("Length:", "Length:") is None
    assert strip_label(None, "By:") is None


def test_audible_fallback_selectors_and_cover_upgrade():
    session = FakeSession(lambda url, params: DummyResponse(text=AUDIBLE_FALLBACK_HTML))

    [result] = AudibleAdapter({}, session=session).search("Project Hail Mary")

    assert session.calls[0] == (AudibleAdapter.SEARCH_URL, {'keywords': 'Project Hail Mary'})
    assert result.title == "Project Hail Mary"
    assert result.authors == "Andy Weir"
    assert result.narrator == "Ray Porter"
    assert result.listening_length == "16 hrs and 10 mins"
    assert result.thumbnail_url == "https://m.media-amazon.com/images/I/phm._SL500_.jpg"
    assert result.source == "audible"


def test_audible_primary_selector_reads_lazy_image():
    session = FakeSession(lambda url, params: DummyResponse(text=AUDIBLE_PRIMARY_HTML))

    [result] = AudibleAdapter({}, session=session).search("Dune")

    assert result.thumbnail_url == "https://m.media-amazon.com/images/I/dune._SL500_.jpg"
    assert result.narrator == "Scott Brick"
    assert result.listening_length is None


def test_audible_without_products_returns_nothing():
    session = FakeSession(lambda url, params: DummyResponse(text="<html><body>No results</body></html>"))

    assert AudibleAdapter({}, session=session).search("zzzz") == []


def test_goodreads_search_reads_row_then_detail_page():
    session = FakeSession(_goodreads_handler())

    [result] = GoodreadsAdapter({}, session=session).search("The Final Empire")

    assert result.title == "The Final Empire (Mistborn, #1)"
    assert result.authors == "Brandon Sanderson"
    assert result.thumbnail_url == "https://i.gr-assets.com/images/S/fe._SY475_.jpg"
    assert result.full_description == "For a thousand years the ash fell."
    assert result.average_rating == "4.47"
    assert [url for url, _ in session.calls] == [GoodreadsAdapter.SEARCH_URL, BOOK_URL]


def test_goodreads_detail_failure_keeps_search_row():
    [result] = GoodreadsAdapter({}, session=FakeSession(_goodreads_handler(detail_status=500))).search("x")

    assert result.thumbnail_url.endswith("._SY475_.jpg")
    assert result.full_description is None


def test_parse_series_page_filters_and_orders_books():
    soup = BeautifulSoup(GOODREADS_SERIES_HTML, "html.parser")

    books = GoodreadsAdapter({}).parse_series_page(soup)

    assert [(b.title, b.order) for b in books] == [
        ("The Final Empire", 1.0),
        ("The Well of Ascension", 2.0),
        ("The Hero of Ages", 3.0),
        ("Secret History", 3.5),
    ]
    assert books[0].authors == "Brandon Sanderson"
    assert books[0].thumbnail_url == "https://i.gr-assets.com/images/S/fe._SX318_.jpg"


def test_get_series_books_follows_series_link():
    session = FakeSession(_goodreads_handler())

    books = GoodreadsAdapter({}, session=session).get_series_books("Mistborn", "The Final Empire")

    assert len(books) == 4
    assert session.calls[-1][0] == SERIES_URL


def test_get_series_books_without_search_hit_is_empty():
    session = FakeSession(lambda url, params: DummyResponse(text="<html></html>"))

    assert GoodreadsAdapter({}, session=session).get_series_books("Nothing", "Nope") == []


def test_detect_language():
    assert detect_language("Edición española") == "Spanish"
    assert detect_language("Kindle Edition, published 2010") == "English"
    assert detect_language(None) == "English"
