"""
Configuration management for the blog cache.
"""
import os
import copy
import json
import logging
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

ENV_PREFIX = 'MB_'
ENV_SEPARATOR = '__'

# Environment variables used by earlier deployments of the site
LEGACY_ENV = {
    'MB_EMVI_CLIENT_ID': 'cms.client_id',
    'MB_EMVI_CLIENT_SECRET': 'cms.client_secret',
    'MB_EMVI_ORGA': 'cms.organization',
    'MB_LOGLEVEL': 'logging.level',
}

SECRET_MARKERS = ('SECRET', 'TOKEN', 'PASSWORD')

# Default configuration
DEFAULT_CONFIG = {
    "cms": {
        "client_id": "",
        "client_secret": "",
        "organization": "",
        "api_url": "https://api.emvi.com",
        "auth_url": "https://auth.emvi.com"
    },
    "blog": {
        "tag": "blog",
        "cache_directory": "static/blog",
        "refresh_interval_seconds": 3600,
        "latest_articles": 3,
        "link_prefix": "/blog",
        "static_prefix": "/static/blog",
        "content_path": "/api/v1/content/",
        "attachment_host": None,
        "eager_refresh": True
    },
    "http": {
        "timeout_seconds": 30,
        "user_agent": "blogsite/0.1 (+https://marvinblum.de)"
    },
    "logging": {
        "level": "warning"
    }
}


def is_secret(key: str) -> bool:
    """Tell whether a config or environment key holds a credential."""
    key = key.upper()
    return any(marker in key for marker in SECRET_MARKERS)


class Config:
    """
    Configuration manager for the blog cache.
    """
    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize the Config.

        Args:
            config_path: Path to a YAML or JSON configuration file
            environ: Environment to read overrides from (defaults to os.environ)
        """
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """
        Load configuration from file or use defaults.

        Returns:
            Configuration dictionary
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path:
            try:
                path = Path(self.config_path)
                if path.exists():
                    if path.suffix.lower() in ['.yaml', '.yml']:
                        with open(path, 'r') as f:
                            user_config = yaml.safe_load(f) or {}
                    elif path.suffix.lower() == '.json':
                        with open(path, 'r') as f:
                            user_config = json.load(f)
                    else:
                        raise ValueError(f"Unsupported config file format: {path.suffix}")

                    if not isinstance(user_config, dict):
                        raise ValueError("Configuration file must contain a mapping")

                    # Update config with user settings
                    self._update_dict(config, user_config)
                else:
                    logger.warning(f"Config file {self.config_path} not found")
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"Error loading config from {self.config_path}: {e}")
                logger.error("Using default configuration")

        # Override with environment variables
        self._override_from_env(config)

        return config

    def _update_dict(self, target: Dict, source: Dict) -> None:
        """
        Recursively update a dictionary.

        Args:
            target: Target dictionary to update
            source: Source dictionary with new values
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._update_dict(target[key], value)
            else:
                target[key] = value

    @staticmethod
    def _parse_value(value: str) -> Any:
        try:
            # Try to parse as JSON
            return json.loads(value)
        except json.JSONDecodeError:
            # If not valid JSON, use as string
            return value

    def _set_path(self, config: Dict, parts, value: Any) -> None:
        current = config
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def _override_from_env(self, config: Dict, prefix: str = ENV_PREFIX) -> None:
        """
        Override configuration with environment variables.

        Nested keys are separated by a double underscore, so
        MB_BLOG__CACHE_DIRECTORY sets blog.cache_directory.

        Args:
            config: Configuration dictionary to update
            prefix: Prefix for environment variables
        """
        for key, path in LEGACY_ENV.items():
            if self.environ.get(key):
                # Credentials and names are plain strings, never JSON
                self._set_path(config, path.split('.'), self.environ[key])

        for key, value in self.environ.items():
            if not key.startswith(prefix) or key in LEGACY_ENV:
                continue
            if ENV_SEPARATOR not in key[len(prefix):]:
                continue

            parts = [part.lower() for part in key[len(prefix):].split(ENV_SEPARATOR) if part]
            if len(parts) < 2:
                continue
            self._set_path(config, parts, self._parse_value(value))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Dot-separated key path (e.g., 'blog.cache_directory')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        parts = key.split('.')
        current = self.config

        for part in parts:
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]

        return current

    def masked(self) -> Dict:
        """
        Copy of the configuration with credentials replaced by asterisks.
        """
        def mask(node):
            if isinstance(node, dict):
                return {
                    k: ('****' if is_secret(k) and v else mask(v))
                    for k, v in node.items()
                }
            return node

        return mask(self.config)

    def save(self, path: Optional[str] = None) -> bool:
        """
        Save the current configuration to a file.

        Args:
            path: Path to save the configuration to

        Returns:
            True if successful, False otherwise
        """
        save_path = path or self.config_path
        if not save_path:
            logger.error("No path specified for saving configuration")
            return False

        try:
            path = Path(save_path)
            if path.suffix.lower() in ['.yaml', '.yml']:
                with open(path, 'w') as f:
                    yaml.dump(self.config, f, default_flow_style=False)
            elif path.suffix.lower() == '.json':
                with open(path, 'w') as f:
                    json.dump(self.config, f, indent=2)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

            return True
        except (OSError, ValueError) as e:
            logger.error(f"Error saving config to {save_path}: {e}")
            return False


# Global configuration instance
config = Config(os.getenv('MB_CONFIG_PATH'))

def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value.

    Args:
        key: Dot-separated key path (e.g., 'blog.cache_directory')
        default: Default value if key not found

    Returns:
        Configuration value
    """
    return config.get(key, default)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Replace the global configuration, e.g. with a file given on the command line.

    Args:
        config_path: Path to a YAML or JSON configuration file

    Returns:
        The new configuration
    """
    global config
    config = Config(config_path or os.getenv('MB_CONFIG_PATH'))
    return config
