"""
Error types for qbt-limits

Every error carries a short code, a one-line summary, a few labelled details
and a hint for fixing it, so the CLI can print something readable instead of
a traceback.
"""

import sys
from functools import wraps
from typing import Any, Dict, Optional

from qbt_limits.logging import get_logger

logger = get_logger(__name__)


class QbtLimitsError(Exception):
    """Base class for errors reported to the user"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 fix: Optional[str] = None):
        self.code = code
        self.message = message
        self.details = dict(details) if details else {}
        self.fix = fix
        super().__init__(self.format_error())

    def format_error(self) -> str:
        """Render summary, details and fix hint as an indented block"""
        bullets = [f"  • {label}: {value}" for label, value in self.details.items()]
        if self.fix:
            bullets.append(f"  • Fix: {self.fix}")
        return "\n".join([self.message, *bullets])


class AuthenticationError(QbtLimitsError):
    """qBittorrent rejected our credentials or session"""

    def __init__(self, host: str, response_text: Optional[str] = None):
        details = {"Server": host}
        if response_text:
            details["Reason"] = response_text
        super().__init__(
            code="AUTH-001",
            message="qBittorrent refused the login",
            details=details,
            fix="Check server.username and server.password (or QBT_LIMITS_SERVER_USERNAME / QBT_LIMITS_SERVER_PASSWORD)"
        )


class ConnectionError(QbtLimitsError):
    """qBittorrent Web UI is unreachable"""

    def __init__(self, host: str, reason: str):
        super().__init__(
            code="CONN-001",
            message="Could not connect to the qBittorrent Web UI",
            details={"Server": host, "Reason": str(reason)},
            fix="Make sure qBittorrent is running with the Web UI enabled and server.address points at it"
        )


class APIError(QbtLimitsError):
    """A Web API request returned an error status"""

    def __init__(self, endpoint: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        details: Dict[str, Any] = {"Endpoint": endpoint}
        if status_code is not None:
            details["HTTP status"] = status_code
        if response_text:
            # Long HTML error pages are not useful in a log line
            details["Response"] = response_text[:200]
        super().__init__(
            code="API-001",
            message="qBittorrent Web API request failed",
            details=details,
            fix="See the qBittorrent log for the cause"
        )


class ConfigurationError(QbtLimitsError):
    """config.yml could not be read or holds an invalid setting"""

    def __init__(self, file_path: str, reason: str):
        super().__init__(
            code="CFG-001",
            message="Configuration could not be loaded",
            details={"Path": file_path, "Reason": reason},
            fix="Fix config.yml (see config/config.example.yml for the layout)"
        )


class LoggingSetupError(QbtLimitsError):
    """The log file could not be opened"""

    def __init__(self, log_path: str, reason: str, config_dir: Optional[str] = None):
        details = {"Log file": log_path, "Reason": reason}
        if config_dir:
            details["Config dir"] = config_dir
        super().__init__(
            code="LOG-001",
            message="File logging is unavailable",
            details=details,
            fix="Point logging.file or QBT_LIMITS_LOG_FILE at a writable location"
        )


class RuleValidationError(QbtLimitsError):
    """A rule, default_limits or default_operator entry is invalid"""

    def __init__(self, rule_name: str, reason: str):
        self.rule_name = rule_name
        self.reason = reason
        super().__init__(
            code="RULE-001",
            message="Rules could not be loaded",
            details={"Rule": rule_name, "Reason": reason},
            fix="Correct the rule in config.yml; no rules are applied until it loads"
        )


class ConditionSyntaxError(RuleValidationError):
    """A numeric threshold is not of the form <operator><number>"""

    def __init__(self, value: Any, reason: str, field: Optional[str] = None, rule_name: str = "(unknown)"):
        self.rule_name = rule_name
        self.reason = reason
        self.value = value
        self.field = field
        QbtLimitsError.__init__(
            self,
            code="RULE-002",
            message="Rules could not be loaded: bad numeric condition",
            details={
                "Rule": rule_name,
                "Field": field or "(unknown)",
                "Value": repr(value),
                "Reason": reason
            },
            fix="Write thresholds as an operator followed by a number, e.g. '>10080' or '<=2.5'"
        )


class TorrentDataError(QbtLimitsError):
    """The torrent listing lacks an attribute rules depend on"""

    def __init__(self, torrent_hash: str, field: str):
        self.torrent_hash = torrent_hash
        self.field = field
        super().__init__(
            code="DATA-001",
            message="qBittorrent returned an incomplete torrent entry",
            details={"Torrent": torrent_hash, "Missing": field},
            fix="Upgrade qBittorrent; category and tags are reported since Web API 2.0"
        )


def handle_errors(func):
    """
    Wrap a CLI entry point so failures end the process with a readable message

    QbtLimitsError prints its formatted block and exits 1, Ctrl+C exits 0 and
    anything else exits 1 with the exception type (traceback at DEBUG).
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except QbtLimitsError as e:
            logger.error(e.format_error())
            sys.exit(1)
        except KeyboardInterrupt:
            logger.info("\nInterrupted")
            sys.exit(0)
        except Exception as e:
            logger.error(f"Unexpected failure: {type(e).__name__}: {e}")
            logger.error("  • Fix: This is a bug, please report it with the message above")
            logger.debug("Traceback:", exc_info=True)
            sys.exit(1)
    return wrapper
