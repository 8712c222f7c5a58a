"""
config.yml loading and setting lookup

Each setting can come from several places. The first one that has a value wins:
CLI flag, then the file named by <ENV>_FILE (Docker secrets), then <ENV>
itself, then config.yml, then the built-in default. Strings in config.yml may
reference the environment as ${NAME} or ${NAME:-fallback}.
"""

import os
import re
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

from qbt_limits.errors import ConfigurationError
from qbt_limits.models import RuleSet
from qbt_limits.rules import build_rule_set


# Dotted config.yml key -> environment variable overriding it
ENV_VAR_MAP = {
    'server.address': 'QBT_LIMITS_SERVER_ADDRESS',
    'server.username': 'QBT_LIMITS_SERVER_USERNAME',
    'server.password': 'QBT_LIMITS_SERVER_PASSWORD',

    'engine.interval': 'QBT_LIMITS_INTERVAL',
    'engine.dry_run': 'QBT_LIMITS_DRY_RUN',

    'logging.level': 'QBT_LIMITS_LOG_LEVEL',
    'logging.file': 'QBT_LIMITS_LOG_FILE',
    'logging.trace_mode': 'QBT_LIMITS_TRACE_MODE',
}

DEFAULT_ADDRESS = 'http://localhost:8080'
DEFAULT_INTERVAL = 60.0
CONFIG_FILENAME = 'config.yml'

TRUE_STRINGS = ('true', '1', 'yes', 'on')

# ${NAME} or ${NAME:-fallback}
ENV_REFERENCE = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


def get_nested_config(config: Dict[str, Any], key: str) -> Optional[Any]:
    """
    Look up a dotted key such as 'server.address'; None when any part is missing

        >>> get_nested_config({'engine': {'interval': 30}}, 'engine.interval')
        30
    """
    node: Any = config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def parse_bool(value: Any) -> bool:
    """Interpret YAML booleans, integers and env strings ('yes', 'on', '1'...)"""
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def parse_float(value: Any, default: float) -> float:
    """float(value), or default (with a warning) when value is not a number"""
    if value is None or isinstance(value, bool):
        return default

    try:
        return float(value)
    except (ValueError, TypeError):
        logging.warning(f"Ignoring non-numeric value {value!r}, using {default}")
        return default


def _read_secret_file(file_var: str) -> Optional[str]:
    path = os.environ[file_var]
    try:
        with open(path, 'r') as f:
            return f.read().strip()
    except OSError as e:
        logging.warning(f"Could not read {file_var} ({path}): {e}")
        return None


def resolve_config(
    cli_value: Optional[Any],
    env_var: str,
    config: Dict[str, Any],
    config_key: str,
    default: Optional[Any] = None
) -> Any:
    """
    Find the effective value of one setting

    Args:
        cli_value: Value given on the command line, None if absent
        env_var: Environment variable for the setting; '<env_var>_FILE' is
            consulted first and an unreadable file is skipped with a warning
        config: Parsed config.yml
        config_key: Dotted key in config.yml
        default: Used when nothing else supplies a value

        >>> resolve_config(None, 'QBT_LIMITS_INTERVAL', {'engine': {'interval': 300}}, 'engine.interval', 60)
        300
    """
    if cli_value is not None:
        return cli_value

    file_var = f"{env_var}_FILE"
    if file_var in os.environ:
        secret = _read_secret_file(file_var)
        if secret is not None:
            logging.debug(f"{config_key} taken from {file_var}")
            return secret

    if env_var in os.environ:
        logging.debug(f"{config_key} taken from {env_var}")
        return os.environ[env_var]

    value = get_nested_config(config or {}, config_key)
    if value is not None:
        logging.debug(f"{config_key} taken from config file")
        return value

    logging.debug(f"{config_key} not set, defaulting to {default!r}")
    return default


def expand_env_vars(value: Any) -> Any:
    """
    Substitute ${NAME} / ${NAME:-fallback} in every string of a parsed YAML tree

    An unset variable without fallback becomes the empty string. Non-string
    scalars are returned unchanged.
    """
    if isinstance(value, str):
        return ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ''), value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Parse a YAML mapping from file_path

    Raises:
        ConfigurationError: missing, unreadable, empty or malformed file, or
            a document that is not a mapping
    """
    where = str(file_path)
    if not file_path.exists():
        raise ConfigurationError(where, "No such file")

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(where, f"Invalid YAML: {e}")
    except UnicodeDecodeError as e:
        raise ConfigurationError(where, f"File is not valid UTF-8: {e}")
    except ValueError as e:
        raise ConfigurationError(where, f"Could not parse file: {e}")
    except OSError as e:
        raise ConfigurationError(where, f"Could not read file: {e}")

    if document is None:
        raise ConfigurationError(where, "File has no content")
    if not isinstance(document, dict):
        raise ConfigurationError(where, f"Expected a mapping at top level, found {type(document).__name__}")
    return document


def default_config_dir() -> Path:
    """
    Where to look for config.yml when no path is given

    QBT_LIMITS_CONFIG_DIR, then CONFIG_DIR, then ./config when present
    (running from a checkout), then /config (container image).
    """
    for var in ('QBT_LIMITS_CONFIG_DIR', 'CONFIG_DIR'):
        if os.environ.get(var):
            return Path(os.environ[var])
    if Path('./config').is_dir():
        return Path('./config')
    return Path('/config')


class Config:
    """Parsed config.yml plus its validated RuleSet"""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Args:
            config_file: config.yml or a directory containing it
                (default_config_dir() when None)

        Raises:
            ConfigurationError: file problems
            RuleValidationError: invalid rules section
        """
        path = Path(config_file) if config_file is not None else default_config_dir()
        if path.is_dir():
            path = path / CONFIG_FILENAME

        self.config_file = path
        self.config_dir = path.parent

        logging.debug(f"Reading {self.config_file}")
        self.config = expand_env_vars(load_yaml_file(self.config_file))

        self.rule_set = build_rule_set(
            self.config.get('rules'),
            default_limits=self.config.get('default_limits'),
            default_operator=self.config.get('default_operator'),
        )
        logging.debug(f"{len(self.rule_set)} rules in {self.config_file}")

    def reload(self) -> 'Config':
        """Read the file again; returns a new Config and leaves this one as is"""
        return Config(self.config_file)

    def get(self, key: str, default: Any = None) -> Any:
        value = get_nested_config(self.config, key)
        return default if value is None else value

    def resolve(self, key: str, cli_value: Optional[Any] = None, default: Any = None) -> Any:
        """resolve_config() for a key listed in ENV_VAR_MAP"""
        return resolve_config(cli_value, ENV_VAR_MAP[key], self.config, key, default)

    def get_server_config(self) -> Dict[str, Optional[str]]:
        return {
            'address': self.resolve('server.address', default=DEFAULT_ADDRESS),
            'username': self.resolve('server.username'),
            'password': self.resolve('server.password'),
        }

    def get_rule_set(self) -> RuleSet:
        return self.rule_set

    def get_interval(self, cli_value: Optional[float] = None) -> float:
        """Seconds between passes; must be positive"""
        interval = parse_float(self.resolve('engine.interval', cli_value, DEFAULT_INTERVAL), DEFAULT_INTERVAL)
        if interval <= 0:
            raise ConfigurationError(str(self.config_file), f"engine.interval must be positive, got {interval}")
        return interval

    def is_dry_run(self) -> bool:
        return parse_bool(self.resolve('engine.dry_run', default=False))

    def get_log_level(self) -> str:
        return str(self.resolve('logging.level', default='INFO')).upper()

    def get_log_file(self) -> Path:
        """Log file path; relative paths are taken from the config directory"""
        log_path = Path(self.resolve('logging.file', default='logs/qbt-limits.log'))
        return log_path if log_path.is_absolute() else self.config_dir / log_path

    def get_trace_mode(self) -> bool:
        """Whether log lines include module, function and line number"""
        return parse_bool(self.resolve('logging.trace_mode', default=False))


def load_config(config_file: Optional[Union[str, Path]] = None) -> Config:
    """Load config.yml (or <dir>/config.yml) into a Config"""
    return Config(Path(config_file) if config_file is not None else None)
