"""
HTTP adapter: request validation, response shape and error mapping.
The orchestrator is replaced so no browser is involved.
"""

import pytest

import app as app_module
from gmaps_scraper.data_models.models import ExtractionMode
from gmaps_scraper.errors import ErrorType, GMapsScraperError, ZeroProgressError
from tests.fakes import make_result


class StubOrchestrator:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []

    async def run_with_timeout(self, request, timeout_seconds=None):
        self.requests.append(request)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def client():
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def stub(monkeypatch):
    def install(outcome):
        orchestrator = StubOrchestrator(outcome)
        monkeypatch.setattr(app_module, 'create_orchestrator', lambda: orchestrator)
        return orchestrator
    return install


# ---------------------------------------------------------------------------
# Status endpoints
# ---------------------------------------------------------------------------

def test_index(client):
    response = client.get('/')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_health(client):
    data = client.get('/health').get_json()
    assert data['status'] == 'ok'
    assert 'concurrency_limit' in data['config']


def test_unknown_endpoint_is_json_404(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    data = response.get_json()
    assert data['success'] is False
    assert any('/api/scrape-gmaps' in endpoint for endpoint in data['available_endpoints'])


# ---------------------------------------------------------------------------
# POST /api/scrape-gmaps
# ---------------------------------------------------------------------------

class TestScrapeEndpoint:
    def test_success_response(self, client, stub):
        orchestrator = stub(make_result())

        response = client.post('/api/scrape-gmaps', json={'query': 'pizza in miami', 'maxResults': 2, 'mode': 'parallel'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['totalResults'] == 2
        assert data['mode'] == 'sequential'
        assert [r['resultOrdinal'] for r in data['results']] == [1, 2]
        assert orchestrator.requests[0].mode == ExtractionMode.CONCURRENT
        assert orchestrator.requests[0].target_count == 2

    def test_body_cannot_raise_worker_count(self, client, stub):
        orchestrator = stub(make_result())

        response = client.post('/api/scrape-gmaps',
                               json={'query': 'pizza', 'maxResults': 500, 'mode': 'parallel', 'concurrency': 500})

        assert response.status_code == 200
        assert orchestrator.requests[0].concurrency_limit == app_module.config.concurrency_limit

    @pytest.mark.parametrize("payload,error", [
        ({'query': '', 'maxResults': 5}, "Query is required and must be a non-empty string"),
        ({'query': 'pizza', 'maxResults': 501}, "Maximum results cannot exceed 500"),
        ({'query': 'pizza', 'maxResults': 2.5}, "maxResults must be an integer"),
    ])
    def test_validation_errors_are_400(self, client, stub, payload, error):
        orchestrator = stub(make_result())

        response = client.post('/api/scrape-gmaps', json=payload)

        assert response.status_code == 400
        assert response.get_json() == {'success': False, 'error': error}
        assert orchestrator.requests == []

    def test_non_json_body_is_400(self, client, stub):
        stub(make_result())
        response = client.post('/api/scrape-gmaps', data='query=pizza')
        assert response.status_code == 400

    def test_fatal_run_error_is_500(self, client, stub):
        stub(ZeroProgressError("Failed to load any results during scrolling"))

        response = client.post('/api/scrape-gmaps', json={'query': 'pizza', 'maxResults': 5})

        assert response.status_code == 500
        data = response.get_json()
        assert data['success'] is False
        assert data['errorType'] == 'zero_progress'
        assert 'Failed to load any results' in data['error']

    def test_timeout_is_500(self, client, stub):
        stub(GMapsScraperError("Extraction timed out after 900s", ErrorType.TIMEOUT))

        response = client.post('/api/scrape-gmaps', json={'query': 'pizza', 'maxResults': 5})

        assert response.status_code == 500
        assert response.get_json()['errorType'] == 'timeout'
