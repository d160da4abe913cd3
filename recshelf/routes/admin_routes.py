"""
Admin routes: backup export/restore, bulk maintenance, book editing and
site settings. Every endpoint requires the admin token.
"""

from flask import Blueprint, Response, jsonify, request, current_app, abort

from recshelf import db
from recshelf.admin import admin_required
from recshelf.exceptions import ImportValidationError
from recshelf.forms import BookItemForm, RecommendationForm, RestoreForm, SiteSettingsForm
from recshelf.models import BookItem, SiteSettings
from recshelf.routes.import_routes import start_library_import
from recshelf.services import recommendation_service
from recshelf.services.backup_service import export_backup, restore_backup
from recshelf.services.metadata_jobs import run_bulk_refresh
from recshelf.services.settings_service import get_site_settings, update_site_settings
from recshelf.utils.csv_utils import detect_csv_format, read_csv
from recshelf.utils.job_tracker import get_job_runner

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _ids_from_request():
    if request.is_json:
        ids = (request.get_json(silent=True) or {}).get('ids') or []
    else:
        ids = request.form.getlist('ids')
    return ids if isinstance(ids, list) else []


def _get_rec_or_404(recommendation_id):
    rec = recommendation_service.get_recommendation_or_none(recommendation_id)
    if rec is None:
        abort(404, description='Recommendation not found')
    return rec


def _get_item_or_404(item_id):
    item = db.session.get(BookItem, item_id)
    if item is None:
        abort(404, description='Book not found')
    return item


@admin_bp.route('/export')
@admin_required
def export():
    """Download every recommendation, book and comment as one CSV file."""
    filename, text = export_backup()
    return Response(
        text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@admin_bp.route('/restore', methods=['POST'])
@admin_required
def restore():
    form = RestoreForm(meta={'csrf': False})
    upload = form.backup_file.data
    try:
        summary = restore_backup(
            getattr(upload, 'filename', None),
            upload.read() if upload else None,
            clear_existing=bool(form.clear_existing.data),
        )
    except ImportValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error restoring backup: {e}")
        return jsonify({'error': f'Error restoring backup: {e}'}), 500
    return jsonify(summary.to_dict())


@admin_bp.route('/import', methods=['POST'])
@admin_required
def import_any():
    """Accept either CSV schema: full backups are restored, library exports start an import job."""
    upload = request.files.get('file')
    filename = getattr(upload, 'filename', None)
    data = upload.read() if upload else None
    try:
        headers, _rows = read_csv(data) if data else ([], [])
        kind = detect_csv_format(headers)
        if kind == 'backup':
            clear = request.form.get('clear_existing', '').lower() in ('1', 'true', 'on', 'y')
            return jsonify(restore_backup(filename, data, clear_existing=clear).to_dict())
        if kind == 'library':
            job_id, total = start_library_import(filename, data, request.form.get('recommender'))
            return jsonify({'jobId': job_id, 'records': total}), 202
        if not data:
            raise ImportValidationError("Please select a CSV file.")
        raise ImportValidationError("Unrecognised CSV format.")
    except ImportValidationError as e:
        return jsonify({'error': str(e)}), 400


@admin_bp.route('/bulk-refresh', methods=['POST'])
@admin_required
def bulk_refresh():
    ids = [int(i) for i in _ids_from_request() if str(i).isdigit()] or None
    job_id = get_job_runner().start('bulk_refresh', run_bulk_refresh, ids)
    return jsonify({'jobId': job_id}), 202


@admin_bp.route('/bulk-delete', methods=['POST'])
@admin_required
def bulk_delete():
    count = recommendation_service.bulk_delete(_ids_from_request())
    return jsonify({'deleted': count})


@admin_bp.route('/bulk-update', methods=['POST'])
@admin_required
def bulk_update():
    data = (request.get_json(silent=True) or {}) if request.is_json else request.form
    count = recommendation_service.bulk_update(
        _ids_from_request(),
        recommended_by=data.get('recommended_by'),
        categories=data.get('categories'),
    )
    return jsonify({'updated': count})


@admin_bp.route('/resanitize', methods=['POST'])
@admin_required
def resanitize():
    return jsonify({'cleaned': recommendation_service.resanitize_all()})


@admin_bp.route('/recommendations/<int:recommendation_id>/staff-pick', methods=['POST'])
@admin_required
def staff_pick(recommendation_id):
    rec = _get_rec_or_404(recommendation_id)
    return jsonify({'id': rec.id, 'is_staff_pick': recommendation_service.toggle_staff_pick(rec)})


@admin_bp.route('/recommendations/<int:recommendation_id>', methods=['POST'])
@admin_required
def edit_recommendation(recommendation_id):
    rec = _get_rec_or_404(recommendation_id)
    form = RecommendationForm(meta={'csrf': False})
    if not form.validate():
        return jsonify({'error': 'Invalid recommendation', 'fields': form.errors}), 400
    recommendation_service.update_recommendation(
        rec,
        title=form.title.data,
        recommended_by=form.recommended_by.data,
        note=form.note.data,
        series_description=form.series_description.data,
    )
    return jsonify(rec.to_dict())


@admin_bp.route('/recommendations/<int:recommendation_id>/items/bulk-edit', methods=['POST'])
@admin_required
def bulk_edit_items(recommendation_id):
    rec = _get_rec_or_404(recommendation_id)
    ids = _ids_from_request()
    if not ids:
        return jsonify({'error': 'No books selected for bulk edit.'}), 400
    data = (request.get_json(silent=True) or {}) if request.is_json else request.form.to_dict()
    count = recommendation_service.bulk_edit_items(rec, ids, data)
    return jsonify({'updated': count})


@admin_bp.route('/recommendations/<int:recommendation_id>/items/bulk-remove', methods=['POST'])
@admin_required
def bulk_remove_items(recommendation_id):
    rec = _get_rec_or_404(recommendation_id)
    ids = _ids_from_request()
    if not ids:
        return jsonify({'error': 'No books selected for removal.'}), 400
    return jsonify({'removed': recommendation_service.bulk_remove_items(rec, ids)})


@admin_bp.route('/recommendations/<int:recommendation_id>', methods=['DELETE'])
@admin_required
def delete_recommendation(recommendation_id):
    recommendation_service.delete_recommendation(_get_rec_or_404(recommendation_id))
    return jsonify({'deleted': recommendation_id})


@admin_bp.route('/recommendations/<int:recommendation_id>/items', methods=['POST'])
@admin_required
def add_item(recommendation_id):
    rec = _get_rec_or_404(recommendation_id)
    form = BookItemForm(meta={'csrf': False})
    if not form.validate():
        return jsonify({'error': 'Invalid book', 'fields': form.errors}), 400
    item = recommendation_service.add_item(rec, form.item_values())
    return jsonify(item.to_dict()), 201


@admin_bp.route('/recommendations/<int:recommendation_id>/reorder', methods=['POST'])
@admin_required
def reorder(recommendation_id):
    rec = _get_rec_or_404(recommendation_id)
    ordered = recommendation_service.reorder_items(rec, _ids_from_request())
    return jsonify([item.id for item in ordered])


@admin_bp.route('/items/<int:item_id>', methods=['POST'])
@admin_required
def edit_item(item_id):
    item = _get_item_or_404(item_id)
    form = BookItemForm(meta={'csrf': False})
    if not form.validate():
        return jsonify({'error': 'Invalid book', 'fields': form.errors}), 400
    recommendation_service.update_item(item, form.item_values())
    return jsonify(item.to_dict())


@admin_bp.route('/items/<int:item_id>', methods=['DELETE'])
@admin_required
def remove_item(item_id):
    recommendation_service.remove_item(_get_item_or_404(item_id))
    return jsonify({'deleted': item_id})


@admin_bp.route('/settings', methods=['GET', 'POST'])
@admin_required
def settings():
    if request.method == 'GET':
        return jsonify(get_site_settings().to_dict())
    form = SiteSettingsForm(meta={'csrf': False})
    if not form.validate():
        return jsonify({'error': 'Invalid settings', 'fields': form.errors}), 400
    values = {name: getattr(form, name).data for name in SiteSettings.FLAG_FIELDS}
    values['google_books_api_key'] = form.google_books_api_key.data
    return jsonify(update_site_settings(values).to_dict())
