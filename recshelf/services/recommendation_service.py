"""
Recommendation operations: saving, likes, comments, staff picks, book
management and the bulk admin actions.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode

from sqlalchemy import func, or_

from recshelf import db
from recshelf.models import BookItem, Comment, LikeEvent, Recommendation, utc_now_naive
from recshelf.services.settings_service import settings_snapshot
from recshelf.utils import unified_metadata
from recshelf.utils.book_utils import clean_html_text, to_int
from recshelf.utils.enrichment import enrich_item
from recshelf.utils.scrapers import AudibleAdapter, GoodreadsAdapter
from recshelf.utils.series_order import resolve_series_order

logger = logging.getLogger(__name__)

EDITABLE_ITEM_FIELDS = (
    'title', 'authors', 'narrator', 'listening_length', 'page_count', 'categories',
    'publisher', 'published_date', 'language', 'series_name', 'series_sequence',
    'series_order', 'description', 'thumbnail_url',
)

# Fields a series bulk edit may overwrite on the selected books
SERIES_BULK_FIELDS = ('authors', 'categories', 'narrator', 'publisher', 'published_date', 'language')

GOOGLE_BOOKS_PAGE_URL = "https://books.google.com/books"


def get_recommendation_or_none(recommendation_id: int) -> Optional[Recommendation]:
    return db.session.get(Recommendation, recommendation_id)


def create_recommendation(
    title: str,
    recommended_by: str,
    note: Optional[str],
    items: Iterable[Dict[str, Any]],
    enrich: bool = True,
) -> Recommendation:
    """Save a recommendation picked from search, enriching each of its books."""
    rec = Recommendation(
        title=title.strip(),
        recommended_by=(recommended_by or '').strip() or 'Anonymous',
        note=(note or '').strip() or None,
    )
    for values in items:
        if not values.get('title'):
            continue
        rec.items.append(BookItem(**_item_kwargs(values)))
    if not rec.items:
        rec.items.append(BookItem(title=rec.title, authors=''))

    if enrich:
        with unified_metadata.build_aggregator(settings_snapshot()) as aggregator:
            for item in rec.items:
                try:
                    enrich_item(item, aggregator)
                except Exception as e:
                    logger.warning(f"[RECOMMENDATION] Enrichment failed for {item.title!r}: {e}")
    resolve_series_order(rec.items)

    db.session.add(rec)
    db.session.commit()
    logger.info(f"[RECOMMENDATION] Created {rec.id} {rec.title!r} with {len(rec.items)} book(s)")
    return rec


def _item_kwargs(values: Dict[str, Any]) -> Dict[str, Any]:
    kwargs = {}
    for name in EDITABLE_ITEM_FIELDS:
        if name not in values:
            continue
        value = values[name]
        if name in ('page_count', 'series_order'):
            value = to_int(value)
        elif isinstance(value, str):
            value = value.strip() or None
        kwargs[name] = value
    kwargs.setdefault('authors', '')
    if kwargs.get('authors') is None:
        kwargs['authors'] = ''
    return kwargs


def add_like(rec: Recommendation) -> int:
    rec.likes = (rec.likes or 0) + 1
    rec.like_events.append(LikeEvent(created_at=utc_now_naive()))
    db.session.commit()
    return rec.likes


def add_comment(rec: Recommendation, text: str, author: Optional[str] = None) -> Comment:
    comment = Comment(author=(author or '').strip() or 'Anonymous', text=text.strip(), created_at=utc_now_naive())
    rec.comments.append(comment)
    db.session.commit()
    return comment


def toggle_staff_pick(rec: Recommendation) -> bool:
    """Flip the staff-pick flag; setting it clears every other recommendation's flag."""
    if rec.is_staff_pick:
        rec.is_staff_pick = False
    else:
        (Recommendation.query
            .filter(Recommendation.id != rec.id, Recommendation.is_staff_pick.is_(True))
            .update({'is_staff_pick': False}, synchronize_session='fetch'))
        rec.is_staff_pick = True
    db.session.commit()
    return rec.is_staff_pick


def get_staff_pick() -> Optional[Recommendation]:
    return Recommendation.query.filter_by(is_staff_pick=True).first()


def get_highest_rated(now: Optional[datetime] = None) -> Optional[Recommendation]:
    """Most liked this calendar month; with no likes this month, the all-time favourite."""
    now = now or utc_now_naive()
    month_start = datetime(now.year, now.month, 1)
    month_end = datetime(now.year + 1, 1, 1) if now.month == 12 else datetime(now.year, now.month + 1, 1)

    like_count = func.count(LikeEvent.id)
    top = (db.session.query(LikeEvent.recommendation_id, like_count)
           .filter(LikeEvent.created_at >= month_start, LikeEvent.created_at < month_end)
           .group_by(LikeEvent.recommendation_id)
           .order_by(like_count.desc(), LikeEvent.recommendation_id)
           .first())
    if top is not None:
        return db.session.get(Recommendation, top[0])

    # Product decision: fall back to all-time likes when the month is quiet
    return (Recommendation.query
            .order_by(Recommendation.likes.desc(), Recommendation.added_at.desc())
            .first())


SORT_OPTIONS = {
    'newest': (Recommendation.added_at.desc(),),
    'oldest': (Recommendation.added_at.asc(),),
    'likes': (Recommendation.likes.desc(), Recommendation.added_at.desc()),
    'title': (Recommendation.title.asc(),),
}


def list_recommendations(
    search: Optional[str] = None,
    recommender: Optional[str] = None,
    genre: Optional[str] = None,
    sort: str = 'newest',
) -> List[Recommendation]:
    query = Recommendation.query
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Recommendation.title).like(pattern),
            Recommendation.items.any(func.lower(BookItem.title).like(pattern)),
            Recommendation.items.any(func.lower(BookItem.authors).like(pattern)),
            Recommendation.items.any(func.lower(BookItem.narrator).like(pattern)),
        ))
    if recommender:
        query = query.filter(func.lower(Recommendation.recommended_by) == recommender.strip().lower())
    if genre:
        query = query.filter(Recommendation.items.any(func.lower(BookItem.categories).like(f"%{genre.strip().lower()}%")))
    return query.order_by(*SORT_OPTIONS.get(sort, SORT_OPTIONS['newest'])).all()


def add_item(rec: Recommendation, values: Dict[str, Any]) -> BookItem:
    """Append a book at the end of the series order."""
    kwargs = _item_kwargs(values)
    if not kwargs.get('series_order'):
        kwargs['series_order'] = max((i.series_order or 0 for i in rec.items), default=0) + 1
    item = BookItem(**kwargs)
    rec.items.append(item)
    db.session.commit()
    return item


def update_item(item: BookItem, values: Dict[str, Any]) -> BookItem:
    for name, value in _item_kwargs(values).items():
        if name in values:
            setattr(item, name, value)
    db.session.commit()
    return item


def remove_item(item: BookItem) -> None:
    db.session.delete(item)
    db.session.commit()


def reorder_items(rec: Recommendation, item_ids: Iterable[int]) -> List[BookItem]:
    """Set series order to the position of each id in ``item_ids``; unlisted books go last."""
    by_id = {item.id: item for item in rec.items}
    ordered = [by_id[i] for i in (to_int(x) for x in item_ids) if i in by_id]
    ordered += [item for item in rec.items if item not in ordered]
    for position, item in enumerate(ordered, start=1):
        item.series_order = position
    db.session.commit()
    return ordered


def update_recommendation(rec: Recommendation, title: str, recommended_by: Optional[str] = None,
                          note: Optional[str] = None, series_description: Optional[str] = None) -> Recommendation:
    """Overwrite the recommendation-level fields; its books are left alone."""
    if not (title or '').strip():
        raise ValueError("Title is required")
    rec.title = title.strip()
    rec.recommended_by = (recommended_by or '').strip() or 'Anonymous'
    rec.note = (note or '').strip() or None
    rec.series_description = (series_description or '').strip() or None
    db.session.commit()
    logger.info(f"[RECOMMENDATION] Updated {rec.id} {rec.title!r}")
    return rec


def _selected_items(rec: Recommendation, item_ids: Iterable[Any]) -> List[BookItem]:
    wanted = {i for i in (to_int(x) for x in item_ids) if i is not None}
    return [item for item in rec.items if item.id in wanted]


def bulk_edit_items(rec: Recommendation, item_ids: Iterable[Any], values: Dict[str, Any]) -> int:
    """
    Apply the non-blank values in ``values`` to the selected books of ``rec``.

    Only SERIES_BULK_FIELDS are considered; ``published_year`` is accepted as
    an alias of ``published_date``. Returns the number of books changed.
    """
    values = dict(values)
    if 'published_year' in values and not values.get('published_date'):
        values['published_date'] = values['published_year']
    changes = {}
    for name in SERIES_BULK_FIELDS:
        value = values.get(name)
        if isinstance(value, str) and value.strip():
            changes[name] = value.strip()
    items = _selected_items(rec, item_ids)
    if not changes or not items:
        return 0
    for item in items:
        for name, value in changes.items():
            setattr(item, name, value)
    db.session.commit()
    logger.info(f"[RECOMMENDATION] Bulk edited {len(items)} book(s) in {rec.id}: {sorted(changes)}")
    return len(items)


def bulk_remove_items(rec: Recommendation, item_ids: Iterable[Any]) -> int:
    items = _selected_items(rec, item_ids)
    for item in items:
        rec.items.remove(item)
    db.session.commit()
    if items:
        logger.info(f"[RECOMMENDATION] Bulk removed {len(items)} book(s) from {rec.id}")
    return len(items)


def get_this_book_links(item: BookItem) -> List[Dict[str, str]]:
    """Store links for a book: its Audible page (or a search), Goodreads search and Google Books."""
    query = ' '.join(part for part in (item.title, item.authors) if part)
    links = [
        {'label': 'Audible', 'url': item.book_url or f"{AudibleAdapter.SEARCH_URL}?{urlencode({'keywords': query})}"},
        {'label': 'Goodreads', 'url': f"{GoodreadsAdapter.SEARCH_URL}?{urlencode({'q': query})}"},
    ]
    if item.google_volume_id:
        links.append({'label': 'Google Books', 'url': f"{GOOGLE_BOOKS_PAGE_URL}?{urlencode({'id': item.google_volume_id})}"})
    return links


def delete_recommendation(rec: Recommendation) -> None:
    db.session.delete(rec)
    db.session.commit()


def bulk_delete(recommendation_ids: Iterable[int]) -> int:
    ids = [i for i in (to_int(x) for x in recommendation_ids) if i is not None]
    recs = Recommendation.query.filter(Recommendation.id.in_(ids)).all() if ids else []
    for rec in recs:
        db.session.delete(rec)
    db.session.commit()
    return len(recs)


def bulk_update(recommendation_ids: Iterable[int], recommended_by: Optional[str] = None,
                categories: Optional[str] = None) -> int:
    ids = [i for i in (to_int(x) for x in recommendation_ids) if i is not None]
    recs = Recommendation.query.filter(Recommendation.id.in_(ids)).all() if ids else []
    for rec in recs:
        if recommended_by:
            rec.recommended_by = recommended_by.strip()
        if categories:
            for item in rec.items:
                item.categories = categories.strip()
    db.session.commit()
    return len(recs)


def resanitize_all() -> int:
    """Strip markup and entities from notes and descriptions; returns rows changed."""
    changed = 0
    for rec in Recommendation.query.all():
        for obj, attr in [(rec, 'note'), (rec, 'series_description')] + [(i, 'description') for i in rec.items]:
            value = getattr(obj, attr)
            cleaned = clean_html_text(value)
            if value and cleaned != value:
                setattr(obj, attr, cleaned)
                changed += 1
    db.session.commit()
    return changed
