"""
Relational models for recommendations and their books.

Timestamps are stored as naive UTC datetimes.
"""

from datetime import datetime, timezone

from recshelf import db


def utc_now_naive() -> datetime:
    """Current UTC time without tzinfo, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Recommendation(db.Model):
    __tablename__ = 'recommendations'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(500), nullable=False)
    recommended_by = db.Column(db.String(200), nullable=False, default='Anonymous')
    note = db.Column(db.Text)
    added_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)
    likes = db.Column(db.Integer, nullable=False, default=0)
    series_description = db.Column(db.Text)
    is_staff_pick = db.Column(db.Boolean, nullable=False, default=False)

    items = db.relationship(
        'BookItem',
        back_populates='recommendation',
        cascade='all, delete-orphan',
        order_by=lambda: [BookItem.series_order, BookItem.id],
    )
    comments = db.relationship(
        'Comment',
        back_populates='recommendation',
        cascade='all, delete-orphan',
        order_by=lambda: Comment.created_at,
    )
    like_events = db.relationship(
        'LikeEvent',
        back_populates='recommendation',
        cascade='all, delete-orphan',
    )

    @property
    def is_series(self) -> bool:
        return len(self.items) > 1

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'title': self.title,
            'recommended_by': self.recommended_by,
            'note': self.note,
            'added_at': self.added_at.isoformat() if self.added_at else None,
            'likes': self.likes,
            'series_description': self.series_description,
            'is_staff_pick': self.is_staff_pick,
            'is_series': self.is_series,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f'<Recommendation {self.id} {self.title!r}>'


class BookItem(db.Model):
    __tablename__ = 'book_items'

    id = db.Column(db.Integer, primary_key=True)
    recommendation_id = db.Column(db.Integer, db.ForeignKey('recommendations.id'), nullable=False, index=True)
    title = db.Column(db.String(500), nullable=False)
    authors = db.Column(db.String(500), nullable=False, default='')
    thumbnail_url = db.Column(db.String(1000))
    google_volume_id = db.Column(db.String(200))
    description = db.Column(db.Text)
    page_count = db.Column(db.Integer)
    narrator = db.Column(db.String(500))
    listening_length = db.Column(db.String(100))
    categories = db.Column(db.String(500))
    publisher = db.Column(db.String(300))
    published_date = db.Column(db.String(50))

    # Provenance fields carried over from personal-library exports
    purchase_date = db.Column(db.String(50))
    release_date = db.Column(db.String(50))
    average_rating = db.Column(db.String(20))
    rating_count = db.Column(db.String(20))
    series_name = db.Column(db.String(300))
    series_sequence = db.Column(db.String(50))
    product_id = db.Column(db.String(100))
    asin = db.Column(db.String(50))
    book_url = db.Column(db.String(1000))
    series_url = db.Column(db.String(1000))
    abridged = db.Column(db.String(20))
    language = db.Column(db.String(50))
    copyright = db.Column(db.String(300))
    series_order = db.Column(db.Integer)

    recommendation = db.relationship('Recommendation', back_populates='items')

    def to_dict(self):
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    def __repr__(self):
        return f'<BookItem {self.id} {self.title!r}>'


class Comment(db.Model):
    __tablename__ = 'comments'

    id = db.Column(db.Integer, primary_key=True)
    recommendation_id = db.Column(db.Integer, db.ForeignKey('recommendations.id'), nullable=False, index=True)
    author = db.Column(db.String(200), nullable=False, default='Anonymous')
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive)

    recommendation = db.relationship('Recommendation', back_populates='comments')

    def to_dict(self):
        return {
            'id': self.id,
            'author': self.author,
            'text': self.text,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class LikeEvent(db.Model):
    __tablename__ = 'like_events'

    id = db.Column(db.Integer, primary_key=True)
    recommendation_id = db.Column(db.Integer, db.ForeignKey('recommendations.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now_naive, index=True)

    recommendation = db.relationship('Recommendation', back_populates='like_events')


class SiteSettings(db.Model):
    """Singleton row (id=1) holding the runtime feature flags."""

    __tablename__ = 'site_settings'

    id = db.Column(db.Integer, primary_key=True)
    google_books_api_key = db.Column(db.String(200))
    enable_google_books = db.Column(db.Boolean, nullable=False, default=True)
    enable_open_library = db.Column(db.Boolean, nullable=False, default=True)
    enable_audible = db.Column(db.Boolean, nullable=False, default=True)
    enable_goodreads = db.Column(db.Boolean, nullable=False, default=True)
    enable_public_import = db.Column(db.Boolean, nullable=False, default=False)
    enable_chat = db.Column(db.Boolean, nullable=False, default=True)
    enable_public_metadata_refresh = db.Column(db.Boolean, nullable=False, default=True)
    enable_get_this_book_links = db.Column(db.Boolean, nullable=False, default=True)

    FLAG_FIELDS = (
        'enable_google_books',
        'enable_open_library',
        'enable_audible',
        'enable_goodreads',
        'enable_chat',
        'enable_public_import',
        'enable_public_metadata_refresh',
        'enable_get_this_book_links',
    )

    def to_dict(self):
        data = {name: getattr(self, name) for name in self.FLAG_FIELDS}
        data['google_books_api_key'] = self.google_books_api_key
        return data
