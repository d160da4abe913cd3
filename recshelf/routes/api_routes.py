"""
Read-only JSON API: catalog search, job progress and recommendation listings.
"""

from flask import Blueprint, jsonify, request, current_app, abort
from flask_wtf.csrf import generate_csrf

from recshelf.services import recommendation_service
from recshelf.services.settings_service import get_site_settings, settings_snapshot
from recshelf.utils import unified_metadata
from recshelf.utils.job_tracker import get_job_runner

api_bp = Blueprint('api', __name__, url_prefix='/api')

MIN_QUERY_LENGTH = 2


@api_bp.route('/search')
def search():
    """Search every enabled metadata source (used by the add-recommendation autocomplete)."""
    query = (request.args.get('q') or '').strip()
    if len(query) < MIN_QUERY_LENGTH:
        return jsonify([])
    with unified_metadata.build_aggregator(settings_snapshot()) as aggregator:
        results = aggregator.search_all(query)
    current_app.logger.debug(f"[API][SEARCH] q={query!r} results={len(results)}")
    return jsonify([result.to_dict() for result in results])


@api_bp.route('/csrf-token')
def csrf_token():
    """Token for the X-CSRFToken header on public POST requests."""
    return jsonify({'csrf_token': generate_csrf()})


@api_bp.route('/progress')
def progress():
    """Poll a background job: {percent, message, isComplete, isError}."""
    job_id = request.args.get('jobId')
    return jsonify(get_job_runner().poll(job_id).to_dict())


@api_bp.route('/recommendations')
def list_recommendations():
    recs = recommendation_service.list_recommendations(
        search=request.args.get('search'),
        recommender=request.args.get('recommender'),
        genre=request.args.get('genre'),
        sort=request.args.get('sort', 'newest'),
    )
    return jsonify([rec.to_dict() for rec in recs])


@api_bp.route('/recommendations/<int:recommendation_id>')
def get_recommendation(recommendation_id):
    rec = recommendation_service.get_recommendation_or_none(recommendation_id)
    if rec is None:
        abort(404, description='Recommendation not found')
    settings = get_site_settings()
    data = rec.to_dict()
    data['comments'] = [c.to_dict() for c in rec.comments] if settings.enable_chat else []
    if settings.enable_get_this_book_links:
        for item_data, item in zip(data['items'], rec.items):
            item_data['get_this_book_links'] = recommendation_service.get_this_book_links(item)
    return jsonify(data)


@api_bp.route('/highlights')
def highlights():
    staff_pick = recommendation_service.get_staff_pick()
    highest = recommendation_service.get_highest_rated()
    return jsonify({
        'staff_pick': staff_pick.to_dict(include_items=False) if staff_pick else None,
        'highest_rated': highest.to_dict(include_items=False) if highest else None,
    })
