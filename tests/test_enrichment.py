from types import SimpleNamespace

from recshelf.domain.models import CatalogResult, EnrichmentPass
from recshelf.utils.enrichment import build_query, enrich_item, merge_missing, needs_enrichment
from recshelf.utils.unified_metadata import MetadataAggregator

from conftest import FakeAdapter


def _book(**overrides):
    values = dict(
        title="Mistborn",
        authors="Brandon Sanderson",
        description=None,
        thumbnail_url=None,
        publisher=None,
        published_date=None,
        page_count=None,
        categories=None,
        narrator=None,
        listening_length=None,
        language=None,
        average_rating=None,
        google_volume_id=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_merge_missing_never_overwrites_populated_fields():
    item = _book(publisher="Tor", thumbnail_url="mine.jpg")
    candidate = CatalogResult(
        title="Mistborn",
        publisher="Gollancz",
        thumbnail_url="theirs.jpg",
        page_count=541,
        source="open_library",
    )

    changed = merge_missing(item, candidate)

    assert item.publisher == "Tor"
    assert item.thumbnail_url == "mine.jpg"
    assert item.page_count == 541
    assert changed == ['page_count']


def test_merge_missing_treats_zero_page_count_as_missing():
    item = _book(page_count=0)

    merge_missing(item, CatalogResult(page_count=672, source="google_books"))

    assert item.page_count == 672


def test_merge_missing_prefers_full_description():
    item = _book()

    merge_missing(item, CatalogResult(description="Short...", full_description="Short and long", source="x"))

    assert item.description == "Short and long"


def test_google_volume_id_only_taken_from_google_results():
    item = _book()
    merge_missing(item, CatalogResult(id="/works/OL1W", title="Mistborn", source="open_library"))
    assert item.google_volume_id is None

    merge_missing(item, CatalogResult(id="vol-123", title="Mistborn", source="google_books"))
    assert item.google_volume_id == "vol-123"


def test_merge_missing_with_no_candidate_is_a_no_op():
    item = _book()
    assert merge_missing(item, None) == []
    assert item.description is None


def test_needs_enrichment():
    assert needs_enrichment(_book()) is True
    full = _book(
        description="d", thumbnail_url="t", publisher="p", published_date="2006",
        page_count=1, categories="c", narrator="n", listening_length="l",
        language="en", average_rating="4.5",
    )
    assert needs_enrichment(full) is False


def test_build_query_skips_unknown_author():
    assert build_query(_book()) == "Mistborn by Brandon Sanderson"
    assert build_query(_book(authors="Unknown Author")) == "Mistborn"
    assert build_query(_book(authors="")) == "Mistborn"


def test_catalog_pass_wins_over_later_passes_regardless_of_adapter_order():
    audible = FakeAdapter(
        "audible",
        [CatalogResult(title="Mistborn", thumbnail_url="audible.jpg", narrator="Michael Kramer")],
        enrichment_pass=EnrichmentPass.AUDIO,
    )
    goodreads = FakeAdapter(
        "goodreads",
        [CatalogResult(title="Mistborn", thumbnail_url="gr.jpg", full_description="From Goodreads")],
        enrichment_pass=EnrichmentPass.COVER_FALLBACK,
    )
    google = FakeAdapter("google_books", [
        CatalogResult(id="unrelated", title="Cooking for One", thumbnail_url="wrong.jpg"),
        CatalogResult(id="vol-1", title="Mistborn: The Final Empire", thumbnail_url="google.jpg", publisher="Tor"),
    ])
    item = _book()

    changed = enrich_item(item, MetadataAggregator([audible, goodreads, google]))

    assert item.thumbnail_url == "google.jpg"
    assert item.google_volume_id == "vol-1"
    assert item.publisher == "Tor"
    assert item.narrator == "Michael Kramer"
    assert item.description == "From Goodreads"
    assert 'narrator' in changed
    assert google.queries == ["Mistborn by Brandon Sanderson"]


def test_description_falls_back_to_source_lookup():
    first = FakeAdapter("google_books", [CatalogResult(title="Elantris")], description=None)
    second = FakeAdapter("open_library", [], description="A city of fallen gods.")
    item = _book(title="Elantris")

    changed = enrich_item(item, MetadataAggregator([first, second]))

    assert item.description == "A city of fallen gods."
    assert changed.count('description') == 1


def test_enrich_with_no_results_changes_nothing():
    item = _book(description="Kept")
    assert enrich_item(item, MetadataAggregator([FakeAdapter("google_books")])) == []
    assert item.description == "Kept"
