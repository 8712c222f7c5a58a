"""Pytest configuration and shared fixtures for qbt-limits test suite."""

import os
import logging

import pytest

from qbt_limits.models import (
    UNLIMITED,
    CategoryEquals,
    Limits,
    NumericCompare,
    Operator,
    Rule,
    RuleSet,
    TagsEqual,
)


ENV_PREFIXES = ('QBT_LIMITS_', 'CONFIG_DIR')


@pytest.fixture(autouse=True)
def clean_environment_variables():
    """Remove qbt-limits environment variables before and after each test."""
    original = {k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIXES)}
    for key in original:
        del os.environ[key]

    yield

    for key in [k for k in os.environ if k.startswith(ENV_PREFIXES)]:
        del os.environ[key]
    os.environ.update(original)


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Remove handlers added by setup_logging so tests don't leak handlers or log files."""
    root_logger = logging.getLogger()
    original_handlers = list(root_logger.handlers)
    original_level = root_logger.level

    yield

    for handler in list(root_logger.handlers):
        if handler not in original_handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(original_level)


# ============================================================================
# Mock QBittorrent API
# ============================================================================

class MockQBittorrentAPI:
    """Mock QBittorrentAPI client for testing without real qBittorrent instance."""

    def __init__(self, torrents=None):
        self.torrents_data = {}
        for torrent in torrents or []:
            self.add_torrent(torrent)

        self.fail_hashes = set()
        self.list_error = None

        # Track API calls for verification
        self.calls = {
            'get_torrents': [],
            'set_share_limits': [],
            'reset_connection': 0,
        }

    def add_torrent(self, torrent):
        self.torrents_data[torrent['hash']] = dict(torrent)

    def get_torrents(self, torrent_hash=None):
        """Get torrents list, optionally restricted to one hash."""
        self.calls['get_torrents'].append(torrent_hash)
        if self.list_error is not None:
            raise self.list_error

        torrents = [dict(t) for t in self.torrents_data.values()]
        if torrent_hash:
            torrents = [t for t in torrents if t['hash'] == torrent_hash]
        return torrents

    def set_share_limits(self, hashes, ratio_limit=-2, seeding_time_limit=-2, inactive_seeding_time_limit=-2):
        """Record the call and update the stored torrent like qBittorrent would."""
        from qbt_limits.errors import APIError

        self.calls['set_share_limits'].append({
            'hashes': list(hashes),
            'ratio_limit': ratio_limit,
            'seeding_time_limit': seeding_time_limit,
            'inactive_seeding_time_limit': inactive_seeding_time_limit,
        })

        for torrent_hash in hashes:
            if torrent_hash in self.fail_hashes:
                raise APIError('torrents/setShareLimits', 500, 'Internal Server Error')
            if torrent_hash in self.torrents_data:
                self.torrents_data[torrent_hash]['ratio_limit'] = ratio_limit
                self.torrents_data[torrent_hash]['seeding_time_limit'] = seeding_time_limit
        return True

    def reset_connection(self):
        self.calls['reset_connection'] += 1


def make_torrent(torrent_hash='a' * 40, name='Test Torrent', category='', tags='',
                 seeding_time=0, ratio_limit=-2, seeding_time_limit=-2, **extra):
    """Build a torrents/info entry (seeding_time in seconds, as the API reports it)."""
    torrent = {
        'hash': torrent_hash,
        'name': name,
        'category': category,
        'tags': tags,
        'seeding_time': seeding_time,
        'ratio': 0.0,
        'num_complete': 10,
        'num_incomplete': 2,
        'size': 1073741824,
        'ratio_limit': ratio_limit,
        'seeding_time_limit': seeding_time_limit,
        'state': 'uploading',
    }
    torrent.update(extra)
    return torrent


@pytest.fixture
def mock_api():
    """Empty mock API."""
    return MockQBittorrentAPI()


@pytest.fixture
def sample_torrents():
    """A handful of torrents covering the common shapes."""
    return [
        make_torrent('a' * 40, 'Ubuntu 24.04', category='linux', tags='iso', seeding_time=20 * 86400,
                     ratio=4.2, num_complete=3),
        make_torrent('b' * 40, 'Some Movie', category='movies', tags='hd, new', seeding_time=3600, ratio=0.5),
        make_torrent('c' * 40, 'Private Release', category='private', tags='', seeding_time=90 * 86400,
                     ratio=12.0),
        make_torrent('d' * 40, 'Uncategorized', category='', tags='', seeding_time=0, ratio=0.0),
    ]


@pytest.fixture
def api_with_torrents(sample_torrents):
    """Mock API preloaded with sample torrents."""
    return MockQBittorrentAPI(sample_torrents)


@pytest.fixture
def sample_rule_set():
    """Rule set mirroring config.example.yml."""
    return RuleSet(
        rules=(
            Rule(1, (CategoryEquals('private'),), Limits(ratio=UNLIMITED, minutes=UNLIMITED), name='private'),
            Rule(2, (CategoryEquals('linux'), TagsEqual(frozenset({'iso'})),
                     NumericCompare('num_complete', Operator.LESS_THAN, 5)),
                 Limits(ratio=20.0, minutes=129600), name='linux isos'),
            Rule(3, (NumericCompare('seeding_time', Operator.GREATER_THAN_OR_EQUAL, 10080),),
                 Limits(ratio=3.0)),
        ),
        default_limits=Limits(ratio=2.0, minutes=43200),
    )


@pytest.fixture
def write_config(tmp_path):
    """Write a config.yml into a temporary config dir and return its path."""
    def _write(content):
        config_file = tmp_path / 'config.yml'
        config_file.write_text(content)
        return config_file
    return _write


SAMPLE_CONFIG = """
server:
  address: http://qbittorrent:8080/
  username: admin
  password: secret

engine:
  interval: 30

logging:
  level: DEBUG
  file: logs/test.log

default_limits:
  ratio: 2
  minutes: 43200

rules:
  - name: private
    category: private
    limits:
      ratio: unlimited
      minutes: unlimited
  - name: linux isos
    category: linux
    tags: [iso]
    num_complete: '<5'
    limits:
      ratio: 20
      minutes: 129600
  - seeding_time: '>=10080'
    limits:
      ratio: 3
"""
