import requests

from recshelf.utils.metadata_providers import (
    GoogleBooksAdapter,
    OpenLibraryAdapter,
    split_query,
    truncate_description,
)

from conftest import DummyResponse, FakeSession


GOOGLE_PAYLOAD = {
    "items": [
        {
            "id": "vol-1",
            "volumeInfo": {
                "title": "Dune",
                "authors": ["Frank Herbert"],
                "description": "x" * 600,
                "imageLinks": {"smallThumbnail": "http://img/small.jpg"},
                "pageCount": 412,
                "categories": ["Fiction", "Science Fiction"],
                "publisher": "Chilton",
                "publishedDate": "1965-08-01",
                "language": "en",
            },
        },
        {"id": "vol-2", "volumeInfo": {}},
    ]
}


def test_split_query():
    assert split_query("Dune by Frank Herbert") == ("Dune", "Frank Herbert")
    assert split_query("Stand by Me by Stephen King") == ("Stand", "Me by Stephen King")
    assert split_query("Dune") == ("Dune", None)


def test_split_query_ignores_case_of_by():
    assert split_query("Dune By Frank Herbert") == ("Dune", "Frank Herbert")
    assert split_query("Dune BY Frank Herbert") == ("Dune", "Frank Herbert")
    assert split_query("Abby Lane") == ("Abby Lane", None)


def test_truncate_description():
    assert truncate_description("short") == "short"
    assert truncate_description("a" * 501) == "a" * 500 + "..."
    assert truncate_description(None) is None


def test_google_search_builds_field_query_and_maps_volumes():
    session = FakeSession(lambda url, params: DummyResponse(GOOGLE_PAYLOAD))
    adapter = GoogleBooksAdapter({'google_books_api_key': 'k123'}, session=session)

    results = adapter.search("Dune by Frank Herbert")

    url, params = session.calls[0]
    assert url == GoogleBooksAdapter.VOLUMES_URL
    assert params == {'q': 'intitle:Dune inauthor:Frank Herbert', 'maxResults': 40, 'key': 'k123'}

    first, second = results
    assert first.id == "vol-1"
    assert first.authors == "Frank Herbert"
    assert first.thumbnail_url == "http://img/small.jpg"
    assert first.full_description == "x" * 600
    assert first.description == "x" * 500 + "..."
    assert first.categories == "Fiction, Science Fiction"
    assert first.page_count == 412
    assert first.source == "google_books"
    assert second.title == "Unknown Title"
    assert second.authors == "Unknown Author"


def test_google_plain_query_is_passed_through():
    session = FakeSession(lambda url, params: DummyResponse({}))
    GoogleBooksAdapter({}, session=session).search("dune")

    assert session.calls[0][1] == {'q': 'dune', 'maxResults': 40}


def test_http_error_yields_empty_list():
    session = FakeSession(lambda url, params: DummyResponse({}, status_code=503))

    assert GoogleBooksAdapter({}, session=session).search("Dune") == []


def test_network_error_yields_empty_list():
    def handler(url, params):
        raise requests.ConnectionError("offline")

    assert OpenLibraryAdapter({}, session=FakeSession(handler)).search("Dune") == []


def test_disabled_adapter_never_touches_the_network():
    session = FakeSession(lambda url, params: DummyResponse(GOOGLE_PAYLOAD))
    adapter = GoogleBooksAdapter({'enable_google_books': False}, session=session)

    assert adapter.enabled is False
    assert adapter.search("Dune") == []
    assert session.calls == []


def test_open_library_search_maps_docs():
    payload = {
        "docs": [{
            "key": "/works/OL1W",
            "title": "Elantris",
            "author_name": ["Brandon Sanderson"],
            "first_sentence": ["Raoden awoke early."],
            "cover_i": 42,
            "number_of_pages_median": 496,
            "subject": ["Fantasy", "Magic", "Gods", "Cities"],
            "publisher": ["Tor"],
            "first_publish_year": 2005,
            "language": ["eng"],
        }]
    }
    session = FakeSession(lambda url, params: DummyResponse(payload))

    [result] = OpenLibraryAdapter({}, session=session).search("Elantris by Brandon Sanderson")

    assert session.calls[0][1] == {'limit': 40, 'title': 'Elantris', 'author': 'Brandon Sanderson'}
    assert result.id == "/works/OL1W"
    assert result.description == "Raoden awoke early."
    assert result.thumbnail_url == "https://covers.openlibrary.org/b/id/42-M.jpg"
    assert result.categories == "Fantasy, Magic, Gods"
    assert result.published_date == "2005"
    assert result.publisher == "Tor"
    assert result.source == "open_library"


def test_open_library_description_reads_work_record():
    def handler(url, params):
        if url == OpenLibraryAdapter.SEARCH_URL:
            return DummyResponse({"docs": [
                {"key": "/works/OL9W", "title": "Warbreaker Companion"},
                {"key": "/works/OL2W", "title": "Elantris"},
            ]})
        assert url == "https://openlibrary.org/works/OL2W.json"
        return DummyResponse({"description": {"type": "/type/text", "value": "Elantris was beautiful."}})

    session = FakeSession(handler)
    text = OpenLibraryAdapter({}, session=session).fetch_description("Elantris", "Brandon Sanderson")

    assert text == "Elantris was beautiful."
    assert session.calls[0][1]['limit'] == 5


def test_open_library_description_accepts_plain_string():
    def handler(url, params):
        if url == OpenLibraryAdapter.SEARCH_URL:
            return DummyResponse({"docs": [{"key": "/works/OL3W", "title": "Something"}]})
        return DummyResponse({"description": "Plain text."})

    assert OpenLibraryAdapter({}, session=FakeSession(handler)).fetch_description("Elantris") == "Plain text."


def test_google_fetch_description_requires_matching_title():
    payload = {"items": [
        {"id": "a", "volumeInfo": {"title": "Other Book", "description": "Wrong"}},
        {"id": "b", "volumeInfo": {"title": "Dune Messiah", "description": "Right"}},
    ]}
    adapter = GoogleBooksAdapter({}, session=FakeSession(lambda url, params: DummyResponse(payload)))

    assert adapter.fetch_description("Dune Messiah", "Frank Herbert") == "Right"
