import pytest

from janitarr.config import Config
from janitarr.logger import Logger

from fakes import FakeFleet
from mock_servers import MockServer, MockState


ENV_VARS = (
    'RADARR_URL', 'RADARR_API_KEY', 'SONARR_URL', 'SONARR_API_KEY',
    'JANITARR_INTERVAL_HOURS', 'JANITARR_DRY_RUN',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def logger():
    Logger.reset()
    instance = Logger(log_dir=None, console=False)
    yield instance
    Logger.reset()


@pytest.fixture
def config(tmp_path):
    cfg = Config(str(tmp_path / 'config.json'))
    # No pacing in tests
    cfg.search.submission_delay_ms = 0
    cfg.search.rate_limit_wait_seconds = 0
    return cfg


@pytest.fixture
def fleet():
    return FakeFleet()


@pytest.fixture
def mock_server():
    """Start MockServers on demand; all are stopped at teardown."""
    servers = []

    def start(state: MockState = None, app=None) -> MockServer:
        server = MockServer(state, app=app).start()
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()
