"""
Site settings access.

The settings row gates which metadata sources are queried and which
features are open to the public. Background jobs take a plain-dict snapshot
so adapters never touch the ORM.
"""

import logging
from typing import Any, Dict

from flask import current_app

from recshelf import db
from recshelf.models import SiteSettings

logger = logging.getLogger(__name__)

SETTINGS_ID = 1


def get_site_settings() -> SiteSettings:
    """Return the singleton settings row, creating it with defaults on first use."""
    settings = db.session.get(SiteSettings, SETTINGS_ID)
    if settings is None:
        settings = SiteSettings(id=SETTINGS_ID)
        db.session.add(settings)
        db.session.commit()
        logger.info("[SETTINGS] Created default site settings")
    return settings


def settings_snapshot() -> Dict[str, Any]:
    """Detached copy of the flags plus the effective Google Books key."""
    settings = get_site_settings()
    snapshot = settings.to_dict()
    if not snapshot.get('google_books_api_key'):
        snapshot['google_books_api_key'] = current_app.config.get('GOOGLE_BOOKS_API_KEY')
    snapshot['http_timeout'] = current_app.config.get('METADATA_HTTP_TIMEOUT', 15)
    snapshot['user_agent'] = current_app.config.get('METADATA_USER_AGENT')
    snapshot['debug'] = current_app.config.get('METADATA_DEBUG', False)
    return snapshot


def update_site_settings(values: Dict[str, Any]) -> SiteSettings:
    settings = get_site_settings()
    for name in SiteSettings.FLAG_FIELDS:
        if name in values:
            setattr(settings, name, bool(values[name]))
    if 'google_books_api_key' in values:
        settings.google_books_api_key = (values['google_books_api_key'] or '').strip() or None
    db.session.commit()
    logger.info(f"[SETTINGS] Updated site settings: {sorted(k for k in values if k != 'google_books_api_key')}")
    return settings
