"""
Fill-missing enrichment.

A book only ever gains values: a populated field is never overwritten, so
whichever source fills a field first keeps it. Used by save, refresh,
bulk refresh and the library importer alike.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from recshelf.domain.models import CatalogResult
from .book_utils import is_blank
from .metadata_providers import GoogleBooksAdapter, UNKNOWN_AUTHOR
from .unified_metadata import MetadataAggregator, best_match

logger = logging.getLogger(__name__)

# (book field, candidate fields in order of preference)
ENRICHABLE_FIELDS = (
    ('description', ('full_description', 'description')),
    ('thumbnail_url', ('thumbnail_url',)),
    ('publisher', ('publisher',)),
    ('published_date', ('published_date',)),
    ('page_count', ('page_count',)),
    ('categories', ('categories',)),
    ('narrator', ('narrator',)),
    ('listening_length', ('listening_length',)),
    ('language', ('language',)),
    ('average_rating', ('average_rating',)),
)


def merge_missing(item, candidate: Optional[CatalogResult]) -> List[str]:
    """Copy candidate values into empty fields of ``item``; return the fields changed."""
    if candidate is None:
        return []

    changed = []
    for item_field, candidate_fields in ENRICHABLE_FIELDS:
        if not is_blank(getattr(item, item_field, None)):
            continue
        for candidate_field in candidate_fields:
            value = getattr(candidate, candidate_field, None)
            if not is_blank(value):
                setattr(item, item_field, value)
                changed.append(item_field)
                break

    if candidate.source == GoogleBooksAdapter.name and candidate.id and is_blank(item.google_volume_id):
        item.google_volume_id = candidate.id
        changed.append('google_volume_id')
    return changed


def needs_enrichment(item) -> bool:
    return any(is_blank(getattr(item, name, None)) for name, _ in ENRICHABLE_FIELDS)


def build_query(item) -> str:
    authors = (item.authors or '').strip()
    if authors and authors != UNKNOWN_AUTHOR:
        return f"{item.title} by {authors}"
    return item.title


def enrich_item(item, aggregator: MetadataAggregator) -> List[str]:
    """Search every enabled source for ``item`` and merge pass by pass."""
    results = aggregator.search_all(build_query(item))
    changed: List[str] = []
    for stage, group in aggregator.group_by_pass(results):
        match = best_match(group, item.title)
        fields = merge_missing(item, match)
        if fields:
            logger.debug(f"[ENRICH] {item.title!r} {stage.name.lower()} pass filled {fields}")
        changed.extend(fields)

    if is_blank(item.description):
        text = aggregator.fetch_description(item.title, item.authors)
        if text:
            item.description = text
            changed.append('description')
    return changed
