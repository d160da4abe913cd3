import os
import tempfile
from dataclasses import replace

# Config reads these at import time
os.environ.setdefault('SECRET_KEY', 'test-secret-key')
os.environ.setdefault('DATA_DIR', tempfile.mkdtemp(prefix='recshelf-test-'))

import pytest
import requests

from recshelf import create_app, db
from recshelf.domain.models import EnrichmentPass
from recshelf.utils import unified_metadata
from recshelf.utils.job_tracker import get_job_runner
from recshelf.utils.metadata_providers import SourceAdapter

ADMIN_TOKEN = 'test-admin-token'


class DummyResponse:
    def __init__(self, payload=None, status_code=200, text=''):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")


class FakeSession:
    """Stands in for requests.Session; ``handler(url, params)`` returns a DummyResponse."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params))
        return self.handler(url, params)

    def close(self):
        pass


class FakeAdapter(SourceAdapter):
    """Adapter returning canned results, tagged with its own source name."""

    def __init__(self, name, results=None, enrichment_pass=EnrichmentPass.CATALOG, description=None):
        super().__init__({}, session=FakeSession(lambda url, params: DummyResponse({})))
        self.name = name
        self.enrichment_pass = enrichment_pass
        self.results = results or []
        self.description = description
        self.queries = []

    def _search(self, query):
        self.queries.append(query)
        return [replace(r, source=self.name) for r in self.results]

    def fetch_description(self, title, authors=None):
        return self.description


class ExplodingAdapter(SourceAdapter):
    """Adapter whose search raises instead of failing soft."""

    def __init__(self, name):
        super().__init__({}, session=FakeSession(lambda url, params: DummyResponse({})))
        self.name = name

    def search(self, query):
        raise RuntimeError(f"{self.name} is down")


@pytest.fixture
def app(tmp_path):
    app = create_app(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'test.db'}",
        ADMIN_API_TOKEN=ADMIN_TOKEN,
        JOB_WORKERS=2,
    )
    yield app
    get_job_runner(app).shutdown()
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}


@pytest.fixture
def use_adapters(monkeypatch):
    """Make every aggregator built by the app use the given adapters."""
    def _install(*adapters):
        monkeypatch.setattr(
            unified_metadata,
            'build_aggregator',
            lambda settings=None, provider_classes=None: unified_metadata.MetadataAggregator(adapters),
        )
        return adapters
    return _install
