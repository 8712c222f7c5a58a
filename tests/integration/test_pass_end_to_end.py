"""
End-to-end tests: config.yml -> rule set -> API client -> setShareLimits

Only the qbittorrent-api Client is mocked; everything from YAML parsing to
the outbound call runs for real.
"""

from unittest.mock import MagicMock, patch

import pytest

from qbt_limits.api import QBittorrentAPI
from qbt_limits.config import Config
from qbt_limits.worker import Worker

from conftest import make_torrent


CONFIG = """
server:
  address: http://qbittorrent:8080

default_operator: '>='

default_limits:
  ratio: 2
  minutes: 43200

rules:
  - name: private trackers
    category: private
    limits:
      ratio: unlimited
      minutes: unlimited

  - name: rare isos
    category: linux
    tags: [iso]
    numComplete: '<5'
    limits:
      ratio: 20
      minutes: 129600

  - name: long seeders
    seeding_time: 10080
    limits:
      ratio: 3

  - name: off for now
    enabled: false
    limits:
      minutes: 0
"""


class FakeClient:
    """Stands in for qbittorrentapi.Client, keeping per-torrent limits"""

    def __init__(self, torrents):
        self.torrents = {t['hash']: dict(t) for t in torrents}
        self.auth_log_in = MagicMock()
        self.set_calls = []

    def torrents_info(self, torrent_hashes=None):
        torrents = [dict(t) for t in self.torrents.values()]
        if torrent_hashes:
            torrents = [t for t in torrents if t['hash'] == torrent_hashes]
        return torrents

    def torrents_set_share_limits(self, ratio_limit, seeding_time_limit, inactive_seeding_time_limit,
                                  torrent_hashes):
        self.set_calls.append((tuple(torrent_hashes), ratio_limit, seeding_time_limit, inactive_seeding_time_limit))
        for torrent_hash in torrent_hashes:
            self.torrents[torrent_hash]['ratio_limit'] = ratio_limit
            self.torrents[torrent_hash]['seeding_time_limit'] = seeding_time_limit


@pytest.fixture
def client():
    return FakeClient([
        make_torrent('1' * 40, 'private thing', category='private', seeding_time=600),
        make_torrent('2' * 40, 'rare iso', category='linux', tags='iso', num_complete=2, seeding_time=60),
        make_torrent('3' * 40, 'popular iso', category='linux', tags='iso', num_complete=90,
                     seeding_time=7 * 86400),
        make_torrent('4' * 40, 'fresh', category='movies', tags='hd', seeding_time=120,
                     ratio_limit=-1, seeding_time_limit=-1),
        make_torrent('5' * 40, 'already right', category='tv', seeding_time=60,
                     ratio_limit=2.0, seeding_time_limit=43200),
    ])


@pytest.fixture
def stack(client, write_config):
    config = Config(write_config(CONFIG))
    with patch('qbt_limits.api.qbittorrentapi.Client', return_value=client):
        server = config.get_server_config()
        api = QBittorrentAPI(server['address'], server['username'], server['password'])
    worker = Worker(api=api, rule_set=config.get_rule_set(), interval=60)
    return config, api, worker


class TestEndToEnd:
    """Full pass against a fake qBittorrent"""

    def test_rules_loaded(self, stack):
        config, _, _ = stack
        rule_set = config.get_rule_set()
        assert [rule.name for rule in rule_set] == ['private trackers', 'rare isos', 'long seeders']
        assert [rule.index for rule in rule_set] == [1, 2, 3]

    def test_first_pass(self, stack, client):
        _, _, worker = stack
        stats = worker.run_once()

        applied = {hashes[0][0]: (ratio, minutes, inactive) for hashes, ratio, minutes, inactive in client.set_calls}
        assert applied == {
            '1': (-1, -1, -2),
            '2': (20.0, 129600, -2),
            '3': (3.0, -2, -2),
            '4': (2.0, 43200, -2),
        }
        assert stats.processed == 5
        assert stats.rules_matched == 3
        assert stats.defaulted == 2
        assert stats.limits_applied == 4
        assert stats.already_correct == 1
        assert stats.errors == 0

    def test_second_pass_makes_no_calls(self, stack, client):
        _, _, worker = stack
        worker.run_once()
        client.set_calls.clear()

        stats = worker.run_once()

        assert client.set_calls == []
        assert stats.already_correct == 5

    def test_no_credentials_no_login(self, stack, client):
        _, api, worker = stack
        worker.run_once()
        client.auth_log_in.assert_not_called()

    def test_reload_changes_outcome(self, stack, client, write_config):
        config, _, worker = stack
        worker.run_once()
        client.set_calls.clear()

        write_config(CONFIG.replace("ratio: 20", "ratio: 25"))
        worker.reload(config.reload().get_rule_set())
        worker.run_once()

        assert client.set_calls == [(('2' * 40,), 25.0, 129600, -2)]

    def test_single_torrent_pass(self, stack, client):
        _, _, worker = stack
        stats = worker.run_once('3' * 40)
        assert stats.processed == 1
        assert client.set_calls == [(('3' * 40,), 3.0, -2, -2)]

    def test_dry_run_pass(self, stack, client):
        config, api, _ = stack
        stats = Worker(api=api, rule_set=config.get_rule_set(), dry_run=True).run_once()
        assert client.set_calls == []
        assert stats.limits_applied == 0
