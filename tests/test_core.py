from datetime import datetime, timedelta

import pytest

from janitarr.core import JanitarrCore
from janitarr.errors import SchedulerStoppedError
from janitarr.logger import ERROR, SEARCH, LogEntry

from fakes import FakeClient, FakeClock, ManualTimerFactory, movies


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def core(config, logger, fleet, timers):
    config.add_server('Movies', 'radarr', 'r:1', 'key')
    fleet.add('Movies', FakeClient(missing=movies(1, 2)))
    instance = JanitarrCore(config, logger, client_factory=fleet.factory,
                            clock=FakeClock(), timer_factory=timers)
    yield instance
    instance.shutdown(timeout=1)


def test_manual_cycle_returns_result(core, fleet):
    result = core.run_manual_cycle()

    assert result.success is True
    assert result.is_manual is True
    assert result.total_searches == 2
    assert fleet.clients['Movies'].searches == [[1, 2]]
    assert core.last_result is result


def test_manual_dry_run_overrides_config(core, fleet):
    result = core.run_manual_cycle(dry_run=True)

    assert result.dry_run is True
    assert fleet.total_attempts == 0


def test_scheduled_cycle_uses_configured_dry_run(core, config, fleet, timers):
    config.search.dry_run = True
    core.start_scheduler()

    timers.fire()

    assert core.last_result.dry_run is True
    assert core.last_result.is_manual is False
    assert fleet.total_attempts == 0


def test_schedule_disabled_keeps_timer_off(core, config, timers):
    config.schedule.enabled = False
    core.start_scheduler()

    assert timers.armed == []
    assert core.run_manual_cycle().success


def test_activity_log_records_cycle(core):
    core.run_manual_cycle()

    logs = core.get_logs()['logs']
    assert logs[0]['type'] == 'cycle_end'
    assert logs[-1]['type'] == 'cycle_start'
    searches = core.get_logs(entry_type=SEARCH)['logs']
    assert any('triggered 2 missing movies searches' in e['message'] for e in searches)
    assert core.get_logs(server_name='Nobody')['logs'] == []


def test_scheduled_cycle_purges_old_entries_once_a_day(core, timers):
    old = datetime.utcnow() - timedelta(days=90)
    core.activity.add(LogEntry(ERROR, 'ancient', timestamp=old))
    core.start_scheduler()

    timers.fire()
    assert not [e for e in core.get_logs(limit=1000)['logs'] if e['message'] == 'ancient']

    core.activity.add(LogEntry(ERROR, 'ancient again', timestamp=old))
    timers.fire()
    assert [e for e in core.get_logs(limit=1000)['logs'] if e['message'] == 'ancient again']


def test_manual_cycle_does_not_purge(core):
    old = datetime.utcnow() - timedelta(days=90)
    core.activity.add(LogEntry(ERROR, 'ancient', timestamp=old))

    core.run_manual_cycle()

    assert [e for e in core.get_logs(limit=1000)['logs'] if e['message'] == 'ancient']


def test_shutdown_rejects_new_cycles(core):
    core.start_scheduler()
    assert core.shutdown(timeout=1) is True

    with pytest.raises(SchedulerStoppedError):
        core.run_manual_cycle()
    assert core.scheduler.get_status().is_running is False


def test_status_never_contacts_servers(core, fleet):
    core.start_scheduler()
    status = core.get_status()

    assert fleet.created == []
    assert status['scheduler']['is_running'] is True
    assert status['seconds_until_next_run'] == 6 * 3600
    assert status['servers'][0]['api_key'] == '********key'
    assert status['last_cycle'] is None
    assert status['search_limits']['missing_movies_limit'] == 10


def test_update_config_follows_interval(core, timers):
    core.start_scheduler()

    core.update_config({'schedule': {'enabled': True, 'interval_hours': 2}})

    assert timers.armed[0].interval == 2 * 3600
    assert core.get_status()['scheduler']['interval_hours'] == 2


def test_scan_detects_without_searching(core, fleet):
    results = core.scan()

    assert results.total_missing == 2
    assert fleet.total_attempts == 0


def test_server_connection_test(core):
    assert core.test_server('Movies')['success'] is True
    assert core.test_server('missing')['success'] is False


def test_clear_logs(core):
    core.run_manual_cycle()
    core.clear_logs()
    assert core.get_logs()['logs'] == []
