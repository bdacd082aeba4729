import threading

import pytest
import requests

from janitarr import __version__
from janitarr.core import JanitarrCore
from janitarr.web import WebServer

from fakes import FakeClient, FakeClock, ManualTimerFactory, movies
from mock_servers import API_KEY, MOCK_MOVIES, MockState


@pytest.fixture
def core(config, logger, fleet):
    config.add_server('Movies', 'radarr', 'r:1', 'secretkey')
    fleet.add('Movies', FakeClient(missing=movies(1, 2, 3)))
    instance = JanitarrCore(config, logger, client_factory=fleet.factory,
                            clock=FakeClock(), timer_factory=ManualTimerFactory())
    instance.start_scheduler()
    yield instance
    instance.shutdown(timeout=1)


@pytest.fixture
def client(core):
    server = WebServer(core)
    server.app.config['TESTING'] = True
    return server.app.test_client()


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok', 'version': __version__}


def test_status(client):
    data = client.get('/api/status').get_json()
    assert data['scheduler']['is_running'] is True
    assert data['servers'][0]['api_key'] == '********tkey'
    assert data['last_cycle'] is None


def test_automation_status(client):
    data = client.get('/api/automation/status').get_json()
    assert data['is_running'] is True
    assert data['is_cycle_active'] is False
    assert data['interval_hours'] == 6
    assert data['seconds_until_next_run'] == 6 * 3600


def test_trigger_runs_cycle(client, fleet):
    response = client.post('/api/automation/trigger', json={})
    data = response.get_json()

    assert response.status_code == 200
    assert data['success'] is True
    assert data['result']['total_searches'] == 3
    assert data['result']['is_manual'] is True
    assert fleet.clients['Movies'].searches == [[1, 2, 3]]


def test_trigger_dry_run(client, fleet):
    data = client.post('/api/automation/trigger', json={'dryRun': True}).get_json()

    assert data['result']['dry_run'] is True
    assert data['result']['total_searches'] == 3
    assert fleet.total_attempts == 0


def test_trigger_rejects_non_boolean_dry_run(client, fleet):
    response = client.post('/api/automation/trigger', json={'dryRun': 'yes'})
    assert response.status_code == 400
    assert fleet.total_attempts == 0


def test_trigger_busy_returns_409(client, core, fleet):
    started = threading.Event()
    release = threading.Event()

    def hold(ids):
        started.set()
        release.wait(5)

    fleet.clients['Movies'].on_search = hold
    first = threading.Thread(target=core.run_manual_cycle)
    first.start()
    try:
        assert started.wait(5)
        # Occupies the single queue slot
        queued = core.scheduler.trigger_manual()

        response = client.post('/api/automation/trigger', json={})
        assert response.status_code == 409
    finally:
        release.set()
        first.join(5)
    assert queued.result(timeout=5).success


def test_trigger_after_shutdown_returns_503(client, core):
    core.shutdown(timeout=1)
    response = client.post('/api/automation/trigger', json={})
    assert response.status_code == 503


def test_logs_and_clear(client):
    client.post('/api/automation/trigger', json={})

    logs = client.get('/api/logs?limit=2').get_json()['logs']
    assert len(logs) == 2
    assert logs[0]['type'] == 'cycle_end'

    searches = client.get('/api/logs?type=search&server=Movies').get_json()['logs']
    assert searches and all(e['server_name'] == 'Movies' for e in searches)

    assert client.delete('/api/logs').get_json() == {'success': True}
    assert client.get('/api/logs').get_json()['logs'] == []


def test_get_config_is_redacted(client):
    data = client.get('/api/config').get_json()
    assert data['servers'][0]['api_key'] == '********tkey'
    assert data['search_limits']['missing_movies_limit'] == 10


def test_post_config(client, config):
    response = client.post('/api/config', json={'search_limits': {
        'missing_movies_limit': 3, 'missing_episodes_limit': 0,
        'cutoff_movies_limit': 1, 'cutoff_episodes_limit': 0,
    }})

    assert response.status_code == 200
    assert config.get_search_limits().missing_movies_limit == 3


def test_post_config_rejects_invalid_values(client, config):
    response = client.post('/api/config', json={'search_limits': {
        'missing_movies_limit': -5, 'missing_episodes_limit': 0,
        'cutoff_movies_limit': 0, 'cutoff_episodes_limit': 0,
    }})

    assert response.status_code == 400
    assert config.get_search_limits().missing_movies_limit == 10


def test_post_config_requires_object(client):
    response = client.post('/api/config', json=[1, 2])
    assert response.status_code == 400


def test_post_config_interval_rearms_scheduler(client, core):
    client.post('/api/config', json={'schedule': {'enabled': True, 'interval_hours': 1}})
    data = client.get('/api/automation/status').get_json()
    assert data['interval_hours'] == 1
    assert data['seconds_until_next_run'] == 3600


def test_servers(client):
    servers = client.get('/api/servers').get_json()['servers']
    assert [s['name'] for s in servers] == ['Movies']
    assert servers[0]['api_key'] == '********tkey'


def test_server_test_endpoint(client, config):
    server_id = config.list_servers()[0].id
    assert client.post(f'/api/servers/{server_id}/test').get_json()['success'] is True
    assert client.post('/api/servers/unknown/test').status_code == 404


def test_live_api_against_mock_radarr(config, logger, mock_server):
    """Full stack over real HTTP: web API -> core -> Radarr client -> mock Radarr."""
    state = MockState('radarr', MOCK_MOVIES)
    radarr = mock_server(state)
    config.add_server('Radarr', 'radarr', radarr.url, API_KEY)
    config.search_limits.missing_movies_limit = 3
    core = JanitarrCore(config, logger, timer_factory=ManualTimerFactory())
    api = mock_server(app=WebServer(core).app)

    try:
        response = requests.post(f"{api.url}/api/automation/trigger",
                                 json={'dryRun': False}, timeout=10)
        assert response.status_code == 200
        assert response.json()['result']['total_searches'] == 3
        assert state.commands == [{'name': 'MoviesSearch', 'movieIds': [1001, 1002, 1004]}]

        status = requests.get(f"{api.url}/api/status", timeout=10).json()
        assert status['last_cycle']['success'] is True
    finally:
        core.shutdown(timeout=1)
