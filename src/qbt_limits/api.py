"""
Thin qbittorrent-api wrapper

Exposes the two Web API calls a pass needs (torrents/info and
torrents/setShareLimits) and translates qbittorrent-api exceptions into
qbt_limits errors. Login happens on first use and again after
reset_connection().
"""

import qbittorrentapi
from typing import List, Dict, Optional

from qbt_limits.errors import AuthenticationError, ConnectionError, APIError
from qbt_limits.logging import get_logger

logger = get_logger(__name__)


class QBittorrentAPI:
    """
    Session against one qBittorrent Web UI

    qbittorrent-api takes care of cookies and API version differences; this
    class only decides when to log in and how failures are reported.
    """

    def __init__(self, host: str, username: Optional[str] = None, password: Optional[str] = None,
                 connect_now: bool = True):
        """
        Args:
            host: Web UI address, e.g. 'http://localhost:8080'
            username: Web UI user, None to skip login
            password: Web UI password
            connect_now: Log in right away instead of on the first request

        Raises:
            AuthenticationError, ConnectionError: only with connect_now
        """
        self.host = host.rstrip('/')
        self.username = username
        self.password = password
        self._logged_in = False

        # Constructing the client does not touch the network
        self.client = qbittorrentapi.Client(
            host=self.host,
            username=self.username,
            password=self.password
        )

        if connect_now:
            self._login()

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and self.password is not None

    def _login(self):
        """Log in unless a session is already active or no credentials are set"""
        if self._logged_in:
            return

        if not self.has_credentials:
            # Whitelisted hosts are served without a session
            logger.info("Skipping login: no username/password configured")
            self._logged_in = True
            return

        try:
            self.client.auth_log_in()
            versions = f"qBittorrent {self.client.app_version()}, Web API {self.client.app_web_api_version()}"
        except qbittorrentapi.LoginFailed as e:
            raise AuthenticationError(self.host, str(e))
        except qbittorrentapi.Forbidden403Error as e:
            raise AuthenticationError(self.host, f"Login forbidden, the client IP may be banned: {e}")
        except qbittorrentapi.HTTPError as e:
            raise APIError('app/version', getattr(e, 'http_status_code', None), str(e))
        except qbittorrentapi.APIConnectionError as e:
            raise ConnectionError(self.host, str(e))

        self._logged_in = True
        logger.info(f"Connected to {self.host} as {self.username}")
        logger.debug(versions)

    def reset_connection(self):
        """Drop the session; the next request logs in again"""
        self._logged_in = False

    def _request(self, endpoint: str, method, **params):
        self._login()
        try:
            return method(**params)
        except qbittorrentapi.Forbidden403Error as e:
            # Session expired or was revoked
            self.reset_connection()
            raise AuthenticationError(self.host, f"{endpoint} answered 403: {e}")
        except qbittorrentapi.HTTPError as e:
            raise APIError(endpoint, getattr(e, 'http_status_code', None), str(e))
        except qbittorrentapi.APIConnectionError as e:
            raise ConnectionError(self.host, str(e))

    def get_torrents(self, torrent_hash: Optional[str] = None) -> List[Dict]:
        """
        List torrents as plain dicts, optionally only the one with torrent_hash
        """
        params = {'torrent_hashes': torrent_hash} if torrent_hash else {}
        listing = self._request('torrents/info', self.client.torrents_info, **params)
        return [dict(entry) for entry in listing]

    def set_share_limits(self, hashes: List[str], ratio_limit: float = -2,
                         seeding_time_limit: int = -2, inactive_seeding_time_limit: int = -2) -> bool:
        """
        Set share limits on the given torrents

        Each limit uses the Web API encoding: -2 follows the global setting,
        -1 removes the limit, anything else is the limit itself (ratio, or
        minutes for the two time limits).
        """
        self._request(
            'torrents/setShareLimits',
            self.client.torrents_set_share_limits,
            ratio_limit=ratio_limit,
            seeding_time_limit=seeding_time_limit,
            inactive_seeding_time_limit=inactive_seeding_time_limit,
            torrent_hashes=hashes
        )
        return True
