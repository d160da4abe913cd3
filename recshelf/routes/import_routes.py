"""
Personal-library CSV import.

The upload is validated synchronously; the import itself runs as a
background job whose id is returned for progress polling.
"""

from flask import Blueprint, jsonify, current_app

from recshelf.admin import admin_or_setting_required
from recshelf.exceptions import ImportValidationError
from recshelf.forms import LibraryImportForm
from recshelf.services.library_import_service import DEFAULT_RECOMMENDER, parse_library_csv, run_library_import
from recshelf.utils.job_tracker import get_job_runner

import_bp = Blueprint('import', __name__, url_prefix='/import')


def start_library_import(filename, data, recommender):
    """Validate then launch; raises ImportValidationError before any job exists."""
    rows = parse_library_csv(filename, data)
    job_id = get_job_runner().start('library_import', run_library_import, rows, recommender or DEFAULT_RECOMMENDER)
    current_app.logger.info(f"[IMPORT] Started library import {job_id} with {len(rows)} rows")
    return job_id, len(rows)


@import_bp.route('/library', methods=['POST'])
@admin_or_setting_required('enable_public_import')
def import_library():
    # CSRFProtect already guards this blueprint
    form = LibraryImportForm(meta={'csrf': False})
    upload = form.csv_file.data
    filename = getattr(upload, 'filename', None)
    data = upload.read() if upload else None
    try:
        job_id, total = start_library_import(filename, data, form.recommender.data)
    except ImportValidationError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify({'jobId': job_id, 'records': total}), 202
