from flask_wtf import FlaskForm
from flask_wtf.file import FileField
from wtforms import StringField, BooleanField, SubmitField, TextAreaField, IntegerField
from wtforms.validators import DataRequired, Length, Optional, NumberRange, URL


class BookItemForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=500)])
    authors = StringField('Authors', validators=[Optional(), Length(max=500)])
    narrator = StringField('Narrator', validators=[Optional(), Length(max=500)])
    listening_length = StringField('Listening Length', validators=[Optional(), Length(max=100)])
    page_count = IntegerField('Pages', validators=[Optional(), NumberRange(min=0)])
    categories = StringField('Categories', validators=[Optional(), Length(max=500)])
    publisher = StringField('Publisher', validators=[Optional(), Length(max=300)])
    published_date = StringField('Published Date', validators=[Optional(), Length(max=50)])
    language = StringField('Language', validators=[Optional(), Length(max=50)])
    series_name = StringField('Series Name', validators=[Optional(), Length(max=300)])
    series_sequence = StringField('Series Sequence', validators=[Optional(), Length(max=50)])
    series_order = IntegerField('Series Order', validators=[Optional(), NumberRange(min=0)])
    thumbnail_url = StringField('Cover URL', validators=[Optional(), URL(), Length(max=1000)])
    description = TextAreaField('Description', validators=[Optional()])
    submit = SubmitField('Save Book')

    def item_values(self):
        """Submitted values keyed by BookItem attribute (buttons and the CSRF token excluded)."""
        return {
            name: field.data for name, field in self._fields.items()
            if name not in ('submit', 'csrf_token')
        }


class RecommendationForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=500)])
    recommended_by = StringField('Recommended By', validators=[Optional(), Length(max=200)])
    note = TextAreaField('Note', validators=[Optional()])
    series_description = TextAreaField('Series Description', validators=[Optional()])
    submit = SubmitField('Save Recommendation')


class RestoreForm(FlaskForm):
    backup_file = FileField('Backup CSV')
    clear_existing = BooleanField('Delete all existing data before restoring')
    submit = SubmitField('Restore')


class LibraryImportForm(FlaskForm):
    csv_file = FileField('Library CSV')
    recommender = StringField('Recommended By', validators=[Optional(), Length(max=200)])
    submit = SubmitField('Import')


class SiteSettingsForm(FlaskForm):
    google_books_api_key = StringField('Google Books API Key', validators=[Optional(), Length(max=200)])
    enable_google_books = BooleanField('Google Books')
    enable_open_library = BooleanField('Open Library')
    enable_audible = BooleanField('Audible')
    enable_goodreads = BooleanField('Goodreads')
    enable_chat = BooleanField('Allow comments')
    enable_public_import = BooleanField('Allow public CSV import')
    enable_public_metadata_refresh = BooleanField('Allow public metadata refresh')
    enable_get_this_book_links = BooleanField('Show "Get this book" links')
    submit = SubmitField('Save Settings')
