"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.tripmap/config.yaml).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from tripmap.domain.models.common import CHAT, GEOCODE, MAP, OSM, STATIC_MAP, CooldownPolicy, EndpointClass, EndpointPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".tripmap"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"

DEFAULT_ENDPOINT_POLICIES: Dict[EndpointClass, EndpointPolicy] = {
    CHAT: EndpointPolicy(min_interval=1.0, max_retries=3, initial_delay=1.0, max_delay=10.0),
    GEOCODE: EndpointPolicy(min_interval=1.0, max_retries=2, initial_delay=2.0, max_delay=10.0),
    MAP: EndpointPolicy(min_interval=1.0, max_retries=2, initial_delay=2.0, max_delay=10.0),
    STATIC_MAP: EndpointPolicy(min_interval=1.0, max_retries=2, initial_delay=2.0, max_delay=10.0),
    OSM: EndpointPolicy(min_interval=1.0, max_retries=0, initial_delay=1.0, max_delay=1.0),
}
DEFAULT_COOLDOWN = CooldownPolicy(threshold=2, window=60.0)
DEFAULT_HISTORY_WINDOW = 5
DEFAULT_AZURE_OPENAI_API_VERSION = "2023-05-15"

# --- Global Configuration Store (Simple Approach) ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None, force: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: ENV VARS take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no file found).")

    # 3. Environment Variables (Highest priority) are handled in get_config

    _loaded = True
    logger.info("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    """Converts common string forms from the environment to bool/int/float."""
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def _lookup_nested(key: str) -> Any:
    """Finds a dotted key ('resilience.chat.max_retries') in the loaded YAML."""
    if key in _config:
        return _config[key]
    node: Any = _config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (dots become underscores, upper case)
    3. YAML config (dotted keys walk nested mappings)
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper().replace('.', '_')
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    value = _lookup_nested(key)
    if value is not None:
        return value

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def get_azure_openai_settings() -> Dict[str, Optional[str]]:
    """Endpoint, key, deployment and API version of the Azure OpenAI chat service."""
    return {
        'endpoint': get_config('AZURE_OPENAI_ENDPOINT') or get_config('azure.openai.endpoint'),
        'api_key': get_config('AZURE_OPENAI_KEY') or get_config('azure.openai.key'),
        'deployment': get_config('AZURE_OPENAI_DEPLOYMENT') or get_config('azure.openai.deployment'),
        'api_version': str(get_config('azure.openai.api_version', DEFAULT_AZURE_OPENAI_API_VERSION)),
    }


def get_azure_maps_key() -> Optional[str]:
    """Server-held Azure Maps subscription key (None when not configured)."""
    key = get_config('AZURE_MAPS_KEY') or get_config('azure.maps.key')
    return str(key) if key else None


def get_endpoint_policy(endpoint_class: EndpointClass) -> EndpointPolicy:
    """Throttle and retry policy of an endpoint class, defaults overridden by config."""
    default = DEFAULT_ENDPOINT_POLICIES.get(endpoint_class, DEFAULT_ENDPOINT_POLICIES[GEOCODE])
    prefix = f'resilience.{endpoint_class}'
    return EndpointPolicy(
        min_interval=float(get_config(f'{prefix}.min_interval', default['min_interval'])),
        max_retries=int(get_config(f'{prefix}.max_retries', default['max_retries'])),
        initial_delay=float(get_config(f'{prefix}.initial_delay', default['initial_delay'])),
        max_delay=float(get_config(f'{prefix}.max_delay', default['max_delay'])),
    )


def get_cooldown_settings() -> CooldownPolicy:
    return CooldownPolicy(
        threshold=int(get_config('resilience.cooldown.threshold', DEFAULT_COOLDOWN['threshold'])),
        window=float(get_config('resilience.cooldown.window', DEFAULT_COOLDOWN['window'])),
    )


def get_history_window() -> int:
    return int(get_config('chat.history_window', DEFAULT_HISTORY_WINDOW))


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
