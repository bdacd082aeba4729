import logging
from datetime import datetime, timedelta

from janitarr.config import ServerInstance
from janitarr.logger import (
    ActivityLog, CYCLE_END, CYCLE_START, ERROR, LogEntry, Logger, RATE_LIMITED, SEARCH,
)
from janitarr.models import MediaItem


RADARR = ServerInstance(name='Movies', kind='radarr', url='r:1', api_key='k')


def test_logger_is_singleton(logger):
    assert Logger() is logger
    assert logger.get_logger('core').name == 'janitarr.core'


def test_memory_buffer(logger):
    log = logger.get_logger('test')
    log.info('hello')
    log.warning('careful')

    logs = Logger.get_logs()
    assert [l['message'] for l in logs][-2:] == ['hello', 'careful']
    assert [l['message'] for l in Logger.get_logs(level='warning')] == ['careful']

    Logger.clear_logs()
    assert Logger.get_logs() == []


def test_file_handler(tmp_path):
    Logger.reset()
    try:
        lg = Logger(log_dir=str(tmp_path / 'logs'), console=False)
        lg.get_logger('file').info('to disk')
        for handler in lg.handlers:
            handler.flush()
        assert 'to disk' in (tmp_path / 'logs' / 'janitarr.log').read_text()
    finally:
        Logger.reset()


def test_observations_become_entries(logger):
    activity = ActivityLog(logger)
    item = MediaItem(id=1, title='Quantum Paradox', year=2025, quality_profile='HD-1080p')

    activity.cycle_start(is_manual=True)
    activity.detection_complete(RADARR, 3, 1)
    activity.item_searched(RADARR, 'missing-movies', item)
    activity.search_triggered(RADARR, 'missing-movies', 1, is_manual=True)
    activity.rate_limited(RADARR, 12)
    activity.search_failed(RADARR, 'cutoff-movies', 'HTTP 500')
    activity.cycle_end(1.5, 1, 1, is_manual=True)

    entries = activity.get_entries()
    assert entries[0].type == CYCLE_END
    assert entries[-1].type == CYCLE_START
    assert entries[-1].is_manual is True
    assert entries[-1].message == 'Manual automation cycle started'

    searches = activity.get_entries(entry_type=SEARCH)
    assert searches[0].message == 'Movies: triggered 1 missing movies searches'
    assert searches[1].message == 'Movies: searching Quantum Paradox (2025) [HD-1080p]'

    assert activity.get_entries(entry_type=RATE_LIMITED)[0].message == \
        'Movies: rate limited, retrying in 12s'
    assert activity.get_entries(entry_type=ERROR)[0].category == 'cutoff-movies'
    assert entries[0].message == 'Cycle completed in 1.5s: 1 searches triggered, 1 failures'


def test_entries_are_logged(logger):
    activity = ActivityLog(logger)
    activity.detection_failed(RADARR, 'connection refused')
    errors = Logger.get_logs(level='ERROR')
    assert errors[-1]['logger'] == 'janitarr.activity'
    assert 'connection refused' in errors[-1]['message']


def test_filters_and_limit(logger):
    activity = ActivityLog(logger)
    other = ServerInstance(name='Shows', kind='sonarr', url='s:1', api_key='k')
    for _ in range(3):
        activity.detection_complete(RADARR, 1, 0)
    activity.detection_complete(other, 2, 0)

    assert len(activity.get_entries(limit=2)) == 2
    assert [e.server_name for e in activity.get_entries(server_name='Shows')] == ['Shows']


def test_capacity_bounds_buffer(logger):
    activity = ActivityLog(logger, capacity=3)
    for i in range(5):
        activity.cycle_start(is_manual=bool(i % 2))
    assert len(activity.get_entries()) == 3


def test_subscribers(logger):
    activity = ActivityLog(logger)
    seen = []

    def broken(entry):
        raise RuntimeError('subscriber bug')

    activity.subscribe(broken)
    activity.subscribe(seen.append)
    activity.cycle_start(is_manual=False)

    assert [e.type for e in seen] == [CYCLE_START]
    assert any('subscriber bug' in l['message'] for l in Logger.get_logs(level='WARNING'))

    activity.unsubscribe(seen.append)
    activity.cycle_start(is_manual=False)
    assert len(seen) == 1


def test_persistence(logger, tmp_path):
    path = tmp_path / 'activity.json'
    activity = ActivityLog(logger, path=str(path))
    activity.cycle_start(is_manual=False)
    activity.search_triggered(RADARR, 'missing-movies', 4, is_manual=False)

    restored = ActivityLog(logger, path=str(path))
    entries = restored.get_entries()
    assert [e.type for e in entries] == [SEARCH, CYCLE_START]
    assert entries[0].count == 4
    assert isinstance(entries[0].timestamp, datetime)


def test_purge_older_than(logger):
    activity = ActivityLog(logger)
    old = LogEntry(CYCLE_START, 'old', timestamp=datetime.utcnow() - timedelta(days=40))
    activity.add(old, level=logging.DEBUG)
    activity.cycle_start(is_manual=False)

    assert activity.purge_older_than(30) == 1
    assert [e.message for e in activity.get_entries()] == ['Scheduled automation cycle started']
    assert activity.purge_older_than(30) == 0


def test_clear(logger):
    activity = ActivityLog(logger)
    activity.cycle_start(is_manual=False)
    activity.clear()
    assert activity.get_entries() == []
