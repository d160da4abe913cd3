from types import SimpleNamespace

from recshelf.utils.series_order import (
    SEQUENCE_SENTINEL,
    extract_order,
    parse_published_date,
    parse_sequence,
    resolve_series_order,
)


def _item(title, published_date=None, series_order=None):
    return SimpleNamespace(title=title, published_date=published_date, series_order=series_order)


def test_extract_order_recognises_each_marker():
    assert extract_order("The Final Empire (Mistborn #1)") == 1
    assert extract_order("Dune Book 3") == 3
    assert extract_order("Saga vol. 7") == 7
    assert extract_order("Saga Vol 8") == 8
    assert extract_order("Elantris") is None
    assert extract_order(None) is None


def test_extract_order_prefers_hash_marker_over_book_marker():
    """Patterns are tried in priority order, not by position in the title."""
    assert extract_order("Book 2 of the Cycle #5") == 5


def test_complete_markers_are_kept():
    items = [_item("Foo #2"), _item("Foo #1"), _item("Foo #3")]

    assert resolve_series_order(items) is False
    assert [i.series_order for i in items] == [2, 1, 3]


def test_incomplete_markers_fall_back_to_publication_date():
    items = [
        _item("Foo #1", published_date="2012-05-01"),
        _item("Foo #3", published_date="2008"),
        _item("Foo", published_date="2010-01-15"),
    ]

    assert resolve_series_order(items) is True
    # Date order is 2008, 2010, 2012 regardless of the extracted numbers
    assert [i.series_order for i in items] == [3, 1, 2]
    assert sorted(i.series_order for i in items) == [1, 2, 3]


def test_duplicate_markers_fall_back_and_undated_items_sort_last():
    items = [
        _item("Foo #1", published_date=None),
        _item("Foo #1 (Special Edition)", published_date="March 4, 2001"),
        _item("Foo Book 2", published_date="1999"),
    ]

    assert resolve_series_order(items) is True
    assert [i.series_order for i in items] == [3, 2, 1]


def test_parse_published_date_handles_year_and_text_formats():
    assert parse_published_date("2015").isoformat() == "2015-01-01"
    assert parse_published_date("October 6, 2015").isoformat() == "2015-10-06"
    assert parse_published_date("2019-07-02T00:00:00").isoformat() == "2019-07-02"
    assert parse_published_date("unknown") is None


def test_parse_sequence_uses_sentinel_for_unparseable_text():
    assert parse_sequence("2") == 2.0
    assert parse_sequence("1.5") == 1.5
    assert parse_sequence("Prequel") == SEQUENCE_SENTINEL
    assert parse_sequence(None) == SEQUENCE_SENTINEL
