"""
Flask application factory for RecShelf.

Wires configuration, logging, the SQLAlchemy store, CSRF protection, the
background job runner and the blueprints together.
"""

import os
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf
from config import Config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
csrf = CSRFProtect()


def create_app(config_object=Config, **overrides):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    # Configure Python logging level from LOG_LEVEL (default ERROR)
    log_level_name = (os.getenv('LOG_LEVEL') or app.config.get('LOG_LEVEL') or 'ERROR').upper()
    log_level = getattr(logging, log_level_name, logging.ERROR)
    logging.getLogger().setLevel(log_level)
    app.logger.setLevel(log_level)

    if not app.config.get('SECRET_KEY'):
        raise RuntimeError("SECRET_KEY must be set in environment or config")

    db.init_app(app)
    csrf.init_app(app)

    from . import models  # noqa: F401  (register tables on the metadata)

    with app.app_context():
        db.create_all()
        from .services.settings_service import get_site_settings
        get_site_settings()

    from .utils.job_tracker import EXTENSION_KEY, JobRunner, JobTracker
    runner = JobRunner(app, JobTracker(), max_workers=app.config.get('JOB_WORKERS', 4))
    app.extensions[EXTENSION_KEY] = runner

    from .routes import register_blueprints
    register_blueprints(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        """JSON clients get a fresh token to retry with."""
        return jsonify({
            'error': 'CSRF token missing or invalid',
            'message': 'Fetch /api/csrf-token and send it in the X-CSRFToken header.',
            'csrf_token': generate_csrf(),
        }), 400

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({'error': 'Forbidden', 'message': getattr(e, 'description', '')}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found', 'message': getattr(e, 'description', '')}), 404

    app.logger.info(f"[APP] {app.config.get('SITE_NAME')} ready (db={app.config.get('SQLALCHEMY_DATABASE_URI')})")
    return app
