"""Blueprint registration."""

from recshelf import csrf


def register_blueprints(app):
    from .api_routes import api_bp
    from .recommendation_routes import recommendation_bp
    from .import_routes import import_bp
    from .admin_routes import admin_bp

    # Token-authenticated and read-only JSON endpoints skip CSRF
    csrf.exempt(api_bp)
    csrf.exempt(admin_bp)

    app.register_blueprint(api_bp)
    app.register_blueprint(recommendation_bp)
    app.register_blueprint(import_bp)
    app.register_blueprint(admin_bp)
