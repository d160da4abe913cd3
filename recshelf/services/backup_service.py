"""
Full-backup CSV export and restore.

Every recommendation is flattened to one row per book (recommendation columns
repeated on each row). Comments travel in a single cell as
``author:text:timestamp`` entries joined by ``|``; backslash, ``:`` and ``|``
inside author and text are backslash-escaped.

Restore is an authoritative upsert keyed by the exported ids: existing rows
are overwritten field by field, missing ones created, and comments already
present (same author, text and timestamp) are not duplicated.
"""

import csv
import io
import logging
from collections import OrderedDict
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Boolean, DateTime, Integer, delete

from recshelf import db
from recshelf.exceptions import ImportValidationError
from recshelf.models import BookItem, Comment, LikeEvent, Recommendation, utc_now_naive
from recshelf.utils.book_utils import to_int
from recshelf.utils.csv_utils import normalize_header, read_csv, validate_csv_upload

logger = logging.getLogger(__name__)

BACKUP_FILENAME_PREFIX = "RecShelf_FullBackup"

# (csv column, model attribute)
REC_COLUMNS = (
    ('rec_id', 'id'),
    ('rec_title', 'title'),
    ('rec_recommended_by', 'recommended_by'),
    ('rec_note', 'note'),
    ('rec_added_at', 'added_at'),
    ('rec_likes', 'likes'),
    ('rec_series_description', 'series_description'),
    ('rec_is_staff_pick', 'is_staff_pick'),
)
ITEM_COLUMNS = (
    ('item_id', 'id'),
    ('item_title', 'title'),
    ('item_authors', 'authors'),
    ('item_thumbnail_url', 'thumbnail_url'),
    ('item_google_volume_id', 'google_volume_id'),
    ('item_description', 'description'),
    ('item_page_count', 'page_count'),
    ('item_narrator', 'narrator'),
    ('item_listening_length', 'listening_length'),
    ('item_categories', 'categories'),
    ('item_publisher', 'publisher'),
    ('item_published_date', 'published_date'),
    ('item_purchase_date', 'purchase_date'),
    ('item_release_date', 'release_date'),
    ('item_average_rating', 'average_rating'),
    ('item_rating_count', 'rating_count'),
    ('item_series_name', 'series_name'),
    ('item_series_sequence', 'series_sequence'),
    ('item_product_id', 'product_id'),
    ('item_asin', 'asin'),
    ('item_book_url', 'book_url'),
    ('item_series_url', 'series_url'),
    ('item_abridged', 'abridged'),
    ('item_language', 'language'),
    ('item_copyright', 'copyright'),
    ('item_series_order', 'series_order'),
)
COMMENTS_COLUMN = 'comments'
BACKUP_COLUMNS = [c for c, _ in REC_COLUMNS] + [c for c, _ in ITEM_COLUMNS] + [COMMENTS_COLUMN]

REC_DEFAULTS = {'title': 'Untitled', 'recommended_by': 'Anonymous', 'likes': 0, 'is_staff_pick': False}
ITEM_DEFAULTS = {'title': 'Unknown Title', 'authors': ''}

_ESCAPABLE = ('\\', ':', '|')


# ---------------------------------------------------------------------------
# Comment cell codec
# ---------------------------------------------------------------------------

def escape_comment_field(value: Optional[str]) -> str:
    text = value or ''
    for ch in _ESCAPABLE:
        text = text.replace(ch, '\\' + ch)
    return text


def unescape_comment_field(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == '\\' and i + 1 < len(value) and value[i + 1] in _ESCAPABLE:
            out.append(value[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def split_unescaped(value: str, sep: str) -> List[str]:
    """Split on ``sep`` except where it is backslash-escaped; segments stay escaped."""
    parts, current = [], []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == '\\' and i + 1 < len(value):
            current.append(value[i:i + 2])
            i += 2
            continue
        if ch == sep:
            parts.append(''.join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append(''.join(current))
    return parts


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 to naive UTC; None when unparseable."""
    if not value or not value.strip():
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def serialize_comments(comments: Iterable[Comment]) -> str:
    return '|'.join(
        f"{escape_comment_field(c.author)}:{escape_comment_field(c.text)}:{c.created_at.isoformat()}"
        for c in comments
    )


def parse_comments(cell: Optional[str]) -> List[Tuple[str, str, datetime]]:
    """Inverse of serialize_comments. Malformed entries are dropped."""
    parsed = []
    if not cell:
        return parsed
    for entry in split_unescaped(cell, '|'):
        if not entry.strip():
            continue
        fields = split_unescaped(entry, ':')
        if len(fields) < 3:
            logger.debug(f"[BACKUP] Skipping malformed comment entry: {entry!r}")
            continue
        # ISO timestamps carry their own colons
        created_at = parse_timestamp(unescape_comment_field(':'.join(fields[2:])))
        if created_at is None:
            logger.debug(f"[BACKUP] Skipping comment with bad timestamp: {entry!r}")
            continue
        parsed.append((unescape_comment_field(fields[0]), unescape_comment_field(fields[1]), created_at))
    return parsed


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def _format_value(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _row_for(rec: Recommendation, item: Optional[BookItem], comments_cell: str) -> Dict[str, str]:
    row = {column: _format_value(getattr(rec, attr)) for column, attr in REC_COLUMNS}
    for column, attr in ITEM_COLUMNS:
        row[column] = _format_value(getattr(item, attr)) if item is not None else ''
    row[COMMENTS_COLUMN] = comments_cell
    return row


def export_rows() -> List[Dict[str, str]]:
    rows = []
    recommendations = Recommendation.query.order_by(Recommendation.title, Recommendation.id).all()
    for rec in recommendations:
        comments_cell = serialize_comments(rec.comments)
        if not rec.items:
            rows.append(_row_for(rec, None, comments_cell))
            continue
        for item in rec.items:
            rows.append(_row_for(rec, item, comments_cell))
    return rows


def export_backup(now: Optional[datetime] = None) -> Tuple[str, str]:
    """Return ``(filename, csv_text)`` for a full backup."""
    now = now or datetime.now()
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=BACKUP_COLUMNS)
    writer.writeheader()
    rows = export_rows()
    writer.writerows(rows)
    filename = f"{BACKUP_FILENAME_PREFIX}_{now.strftime('%Y%m%d_%H%M%S')}.csv"
    logger.info(f"[BACKUP] Exported {len(rows)} rows to {filename}")
    return filename, buffer.getvalue()


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------

@dataclass
class RestoreSummary:
    recommendations_processed: int = 0
    recommendations_added: int = 0
    recommendations_updated: int = 0
    items_added: int = 0
    items_updated: int = 0
    comments_added: int = 0
    rows_skipped: int = 0
    cleared: bool = False
    messages: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Restore complete: {self.recommendations_added} recommendations added, "
            f"{self.recommendations_updated} updated, {self.items_added} books added, "
            f"{self.items_updated} books updated, {self.comments_added} comments added."
        )

    def to_dict(self):
        data = asdict(self)
        data['message'] = self.message
        return data


def _convert(model, attr: str, raw: Optional[str]):
    if raw is None or raw == '':
        return None
    column_type = model.__table__.columns[attr].type
    if isinstance(column_type, Boolean):
        return raw.strip().lower() in ('true', '1', 'yes', 'y')
    if isinstance(column_type, Integer):
        return to_int(raw)
    if isinstance(column_type, DateTime):
        return parse_timestamp(raw)
    return raw


def _apply_columns(obj, row: Dict[str, str], columns, defaults: Dict[str, object]) -> None:
    for column, attr in columns:
        if attr == 'id':
            continue
        value = _convert(type(obj), attr, row.get(normalize_header(column)))
        if value is None and attr in defaults:
            value = defaults[attr]
        setattr(obj, attr, value)


def clear_all_data() -> None:
    db.session.execute(delete(Comment))
    db.session.execute(delete(LikeEvent))
    db.session.execute(delete(BookItem))
    db.session.execute(delete(Recommendation))
    db.session.commit()
    db.session.expunge_all()
    logger.warning("[BACKUP] Cleared all recommendations, books, likes and comments")


def restore_backup(filename: Optional[str], data: Optional[bytes], clear_existing: bool = False) -> RestoreSummary:
    """Validate and restore a full-backup CSV. Raises ImportValidationError before touching data."""
    validate_csv_upload(filename, data, missing_message="Please select a backup file.")
    _headers, rows = read_csv(data)

    groups: "OrderedDict[int, List[Dict[str, str]]]" = OrderedDict()
    skipped = 0
    for row in rows:
        rec_id = to_int(row.get('recid'))
        if rec_id is None:
            skipped += 1
            continue
        groups.setdefault(rec_id, []).append(row)
    if not groups:
        raise ImportValidationError("The backup file contains no records.")

    summary = RestoreSummary(rows_skipped=skipped)
    if clear_existing:
        clear_all_data()
        summary.cleared = True

    staff_pick: Optional[Recommendation] = None
    for rec_id, group in groups.items():
        first = group[0]
        rec = db.session.get(Recommendation, rec_id)
        if rec is None:
            rec = Recommendation(id=rec_id)
            db.session.add(rec)
            summary.recommendations_added += 1
        else:
            summary.recommendations_updated += 1
        _apply_columns(rec, first, REC_COLUMNS, REC_DEFAULTS)
        if rec.added_at is None:
            rec.added_at = utc_now_naive()
        if rec.is_staff_pick:
            staff_pick = rec
        summary.recommendations_processed += 1

        for row in group:
            item_id = to_int(row.get('itemid'))
            if item_id is None:
                continue
            item = db.session.get(BookItem, item_id)
            if item is None:
                item = BookItem(id=item_id)
                db.session.add(item)
                summary.items_added += 1
            else:
                summary.items_updated += 1
            item.recommendation = rec
            _apply_columns(item, row, ITEM_COLUMNS, ITEM_DEFAULTS)

        existing = {(c.author, c.text, c.created_at) for c in rec.comments}
        for author, text, created_at in parse_comments(first.get(COMMENTS_COLUMN)):
            key = (author or 'Anonymous', text, created_at)
            if key in existing:
                continue
            rec.comments.append(Comment(author=key[0], text=text, created_at=created_at))
            existing.add(key)
            summary.comments_added += 1

    db.session.flush()
    if staff_pick is not None:
        (Recommendation.query
            .filter(Recommendation.id != staff_pick.id, Recommendation.is_staff_pick.is_(True))
            .update({'is_staff_pick': False}, synchronize_session='fetch'))
    db.session.commit()

    logger.info(f"[BACKUP] {summary.message}")
    return summary
