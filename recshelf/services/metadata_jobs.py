"""
Background job bodies for metadata refresh and series discovery.

Each body runs on a JobRunner worker inside its own app context, so it
re-loads everything by id and builds its own adapters. Progress is reported
through the ``progress(percent, message)`` handle; the return value is the
completion message.
"""

import logging
from typing import Iterable, Optional

from recshelf import db
from recshelf.exceptions import JobError
from recshelf.models import BookItem, Recommendation
from recshelf.services.settings_service import settings_snapshot
from recshelf.utils import unified_metadata
from recshelf.utils.book_utils import is_blank
from recshelf.utils.enrichment import enrich_item, needs_enrichment
from recshelf.utils.scrapers import GoodreadsAdapter
from recshelf.utils.series_order import format_sequence, resolve_series_order

logger = logging.getLogger(__name__)


def _load_recommendation(recommendation_id: int) -> Recommendation:
    rec = db.session.get(Recommendation, recommendation_id)
    if rec is None:
        raise JobError("Recommendation not found")
    return rec


def run_metadata_refresh(progress, recommendation_id: int) -> str:
    progress(5, "Loading recommendation...")
    rec = _load_recommendation(recommendation_id)
    items = list(rec.items)
    total = len(items)
    updated = 0

    with unified_metadata.build_aggregator(settings_snapshot()) as aggregator:
        for index, item in enumerate(items):
            progress(10 + int(80 * index / total), f"Fetching metadata for {item.title} ({index + 1}/{total})...")
            if not needs_enrichment(item):
                continue
            try:
                if enrich_item(item, aggregator):
                    updated += 1
            except Exception as e:
                logger.warning(f"[REFRESH] Enrichment failed for item {item.id}: {e}")

    progress(90, "Finalizing...")
    if items:
        resolve_series_order(items)
    db.session.commit()
    return f"Complete! Updated {updated} book(s)"


def run_series_discovery(progress, recommendation_id: int) -> str:
    progress(5, "Loading recommendation...")
    rec = _load_recommendation(recommendation_id)
    if not rec.is_series:
        raise JobError("This is not a series recommendation")

    first = rec.items[0]
    series_name = first.series_name or rec.title
    progress(10, f"Searching Goodreads for {series_name}...")
    with unified_metadata.build_aggregator(settings_snapshot()) as aggregator:
        goodreads = aggregator.get_adapter(GoodreadsAdapter.name)
        if goodreads is None:
            raise JobError("Goodreads lookups are disabled")
        books = goodreads.get_series_books(series_name, first.title)
    if not books:
        raise JobError("Could not find series information on Goodreads")

    progress(30, f"Found {len(books)} books in series")
    existing = {(item.title or '').strip().lower(): item for item in rec.items}
    added = 0
    for index, book in enumerate(books):
        progress(30 + int(60 * index / len(books)), f"Processing {book.title}...")
        item = existing.get(book.title.strip().lower())
        if item is not None:
            item.series_order = int(book.order)
            item.series_sequence = format_sequence(book.order)
            if is_blank(item.thumbnail_url) and book.thumbnail_url:
                item.thumbnail_url = book.thumbnail_url
            continue
        new_item = BookItem(
            title=book.title,
            authors=book.authors or first.authors or '',
            thumbnail_url=book.thumbnail_url,
            series_name=series_name,
            series_sequence=format_sequence(book.order),
            series_order=int(book.order),
        )
        rec.items.append(new_item)
        existing[book.title.strip().lower()] = new_item
        added += 1

    progress(90, "Saving...")
    db.session.commit()
    return f"Complete! Found {len(books)} book(s), added {added}"


def run_bulk_refresh(progress, recommendation_ids: Optional[Iterable[int]] = None) -> str:
    """Enrich every book (or the books of the given recommendations), one at a time."""
    progress(5, "Loading books...")
    query = BookItem.query
    if recommendation_ids:
        query = query.filter(BookItem.recommendation_id.in_(list(recommendation_ids)))
    item_ids = [row.id for row in query.with_entities(BookItem.id).order_by(BookItem.id).all()]
    total = len(item_ids)
    updated = 0

    with unified_metadata.build_aggregator(settings_snapshot()) as aggregator:
        for index, item_id in enumerate(item_ids):
            item = db.session.get(BookItem, item_id)
            if item is None or not needs_enrichment(item):
                continue
            progress(10 + int(85 * index / total), f"Refreshing {item.title} ({index + 1}/{total})...")
            try:
                if enrich_item(item, aggregator):
                    updated += 1
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.warning(f"[BULK_REFRESH] Enrichment failed for item {item_id}: {e}")

    return f"Complete! Updated {updated} of {total} book(s)"
