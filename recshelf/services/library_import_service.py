"""
Personal-library CSV import.

Rows sharing a series name become one series recommendation; rows without
one become standalone recommendations. Existing recommendations and books
are matched by case-insensitive title and only gain missing values. Every
book touched is then enriched from the metadata sources, one at a time.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from sqlalchemy import func

from recshelf import db
from recshelf.exceptions import ImportValidationError
from recshelf.models import BookItem, Recommendation
from recshelf.services.settings_service import settings_snapshot
from recshelf.utils import unified_metadata
from recshelf.utils.book_utils import clean_html_text, is_blank, to_int
from recshelf.utils.csv_utils import detect_csv_format, read_csv, validate_csv_upload
from recshelf.utils.enrichment import enrich_item
from recshelf.utils.series_order import parse_sequence

logger = logging.getLogger(__name__)

DEFAULT_RECOMMENDER = "CSV Import"

# normalized header -> BookItem attribute
LIBRARY_COLUMNS = OrderedDict([
    ('title', 'title'),
    ('author', 'authors'),
    ('narratedby', 'narrator'),
    ('purchasedate', 'purchase_date'),
    ('duration', 'listening_length'),
    ('releasedate', 'release_date'),
    ('averating', 'average_rating'),
    ('genre', 'categories'),
    ('seriesname', 'series_name'),
    ('seriessequence', 'series_sequence'),
    ('productid', 'product_id'),
    ('asin', 'asin'),
    ('bookurl', 'book_url'),
    ('ratingcount', 'rating_count'),
    ('publisher', 'publisher'),
    ('copyright', 'copyright'),
    ('seriesurl', 'series_url'),
    ('abridged', 'abridged'),
    ('language', 'language'),
])


def parse_library_csv(filename: Optional[str], data: Optional[bytes]) -> List[Dict[str, str]]:
    """Validate the upload and return its rows keyed by normalized header."""
    validate_csv_upload(filename, data)
    headers, rows = read_csv(data)
    if detect_csv_format(headers) == 'backup':
        raise ImportValidationError("This file is a full backup. Use the admin restore instead.")
    rows = [row for row in rows if row.get('title')]
    if not rows:
        raise ImportValidationError("No records found.")
    return rows


def item_values(row: Dict[str, str]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for key, attr in LIBRARY_COLUMNS.items():
        value = row.get(key)
        if value:
            values[attr] = value
    if row.get('releasedate'):
        values['published_date'] = row['releasedate']
    description = clean_html_text(row.get('description')) or clean_html_text(row.get('summary'))
    if description:
        values['description'] = description
    sequence = row.get('seriessequence')
    if sequence and to_int(sequence) is not None:
        values['series_order'] = to_int(sequence)
    return values


def fill_missing_from_row(item: BookItem, values: Dict[str, object]) -> None:
    for attr, value in values.items():
        if is_blank(getattr(item, attr, None)):
            setattr(item, attr, value)


def order_series_items(items: List[BookItem]) -> None:
    """Sort by explicit order, then parsed sequence text, and renumber 1..N."""
    def sort_key(item):
        sequence = parse_sequence(item.series_sequence)
        primary = item.series_order if item.series_order and item.series_order > 0 else sequence
        return (primary, sequence)

    for position, item in enumerate(sorted(items, key=sort_key), start=1):
        item.series_order = position


def _find_recommendation(title: str, series: bool) -> Optional[Recommendation]:
    candidates = Recommendation.query.filter(func.lower(Recommendation.title) == title.strip().lower()).all()
    for rec in candidates:
        if series:
            if rec.is_series or any((i.series_name or '').lower() == title.lower() for i in rec.items):
                return rec
        elif not rec.is_series:
            return rec
    return None


def _upsert_item(rec: Recommendation, values: Dict[str, object], standalone: bool = False) -> BookItem:
    """Match a book by title; a standalone recommendation always reuses its first book."""
    if standalone and rec.items:
        item = rec.items[0]
        fill_missing_from_row(item, values)
        return item
    title = str(values['title']).strip()
    for item in rec.items:
        if (item.title or '').strip().lower() == title.lower():
            fill_missing_from_row(item, values)
            return item
    item = BookItem(title=title, authors=values.get('authors') or '')
    fill_missing_from_row(item, values)
    rec.items.append(item)
    return item


def import_rows(rows: List[Dict[str, str]], recommender: str = DEFAULT_RECOMMENDER) -> List[BookItem]:
    """Persist rows as recommendations and return every book touched."""
    recommender = (recommender or '').strip() or DEFAULT_RECOMMENDER
    series_groups: "OrderedDict[str, List[Dict[str, str]]]" = OrderedDict()
    standalone: List[Dict[str, str]] = []
    for row in rows:
        name = (row.get('seriesname') or '').strip()
        if name:
            series_groups.setdefault(name, []).append(row)
        else:
            standalone.append(row)

    touched: List[BookItem] = []
    for name, group in series_groups.items():
        rec = _find_recommendation(name, series=True)
        if rec is None:
            rec = Recommendation(
                title=name,
                recommended_by=recommender,
                series_description=f"Imported Series: {name}",
            )
            db.session.add(rec)
        for row in group:
            touched.append(_upsert_item(rec, item_values(row)))
        order_series_items(list(rec.items))

    for row in standalone:
        title = row['title'].strip()
        rec = _find_recommendation(title, series=False)
        if rec is None:
            rec = Recommendation(
                title=title,
                recommended_by=recommender,
                note=clean_html_text(row.get('summary')),
            )
            db.session.add(rec)
        item = _upsert_item(rec, item_values(row), standalone=True)
        if not item.series_order:
            item.series_order = 1
        touched.append(item)

    db.session.commit()
    return touched


def run_library_import(progress, rows: List[Dict[str, str]], recommender: str = DEFAULT_RECOMMENDER) -> str:
    """Background job body for a personal-library import."""
    progress(5, "Reading CSV file...")
    total = len(rows)
    progress(10, f"Analysing {total} records...")
    progress(20, "Importing books...")
    touched_ids = [item.id for item in import_rows(rows, recommender)]
    progress(50, f"Imported {total} books. Fetching metadata...")

    with unified_metadata.build_aggregator(settings_snapshot()) as aggregator:
        for index, item_id in enumerate(touched_ids):
            item = db.session.get(BookItem, item_id)
            if item is None:
                continue
            progress(50 + int(50 * index / len(touched_ids)), f"Fetching metadata for {item.title}...")
            try:
                enrich_item(item, aggregator)
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.warning(f"[IMPORT] Metadata enrichment failed for {item_id}: {e}")

    logger.info(f"[IMPORT] Library import finished: {total} rows, {len(touched_ids)} books touched")
    return f"Done! Imported {total} books."
