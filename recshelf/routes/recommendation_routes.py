"""
Public recommendation actions: save, like, comment, and the metadata jobs.
"""

from flask import Blueprint, jsonify, request, current_app, abort

from recshelf.admin import admin_or_setting_required
from recshelf.services import recommendation_service
from recshelf.services.metadata_jobs import run_metadata_refresh, run_series_discovery
from recshelf.utils.job_tracker import get_job_runner

recommendation_bp = Blueprint('recommendations', __name__, url_prefix='/recommendations')


def _payload():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _get_or_404(recommendation_id):
    rec = recommendation_service.get_recommendation_or_none(recommendation_id)
    if rec is None:
        abort(404, description='Recommendation not found')
    return rec


@recommendation_bp.route('', methods=['POST'])
def create():
    """Save a recommendation; each book is enriched from the metadata sources."""
    data = _payload()
    title = (data.get('title') or '').strip()
    if not title:
        return jsonify({'error': 'Title is required'}), 400
    items = data.get('items') or []
    if not isinstance(items, list):
        return jsonify({'error': 'items must be a list'}), 400
    try:
        rec = recommendation_service.create_recommendation(
            title=title,
            recommended_by=data.get('recommended_by'),
            note=data.get('note'),
            items=[i for i in items if isinstance(i, dict)],
        )
    except Exception as e:
        current_app.logger.error(f"Error saving recommendation {title!r}: {e}")
        return jsonify({'error': 'Could not save recommendation'}), 500
    return jsonify(rec.to_dict()), 201


@recommendation_bp.route('/<int:recommendation_id>/like', methods=['POST'])
def like(recommendation_id):
    rec = _get_or_404(recommendation_id)
    return jsonify({'likes': recommendation_service.add_like(rec)})


@recommendation_bp.route('/<int:recommendation_id>/comments', methods=['GET'])
@admin_or_setting_required('enable_chat')
def list_comments(recommendation_id):
    rec = _get_or_404(recommendation_id)
    return jsonify([c.to_dict() for c in rec.comments])


@recommendation_bp.route('/<int:recommendation_id>/comments', methods=['POST'])
@admin_or_setting_required('enable_chat')
def add_comment(recommendation_id):
    rec = _get_or_404(recommendation_id)
    data = _payload()
    text = (data.get('text') or '').strip()
    if not text:
        return jsonify({'error': 'Comment text is required'}), 400
    comment = recommendation_service.add_comment(rec, text, data.get('author'))
    return jsonify(comment.to_dict()), 201


@recommendation_bp.route('/<int:recommendation_id>/refresh', methods=['POST'])
@admin_or_setting_required('enable_public_metadata_refresh')
def refresh_metadata(recommendation_id):
    """Start a background metadata refresh; poll /api/progress with the returned id."""
    _get_or_404(recommendation_id)
    job_id = get_job_runner().start('metadata_refresh', run_metadata_refresh, recommendation_id)
    return jsonify({'jobId': job_id}), 202


@recommendation_bp.route('/<int:recommendation_id>/discover-series', methods=['POST'])
@admin_or_setting_required('enable_public_metadata_refresh')
def discover_series(recommendation_id):
    rec = _get_or_404(recommendation_id)
    if not rec.is_series:
        return jsonify({'error': 'This is not a series recommendation'}), 400
    job_id = get_job_runner().start('series_discovery', run_series_discovery, recommendation_id)
    return jsonify({'jobId': job_id}), 202
