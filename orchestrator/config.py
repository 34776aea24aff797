#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration management for the tagging pipeline.
Loads YAML config and credentials with environment variable support.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG: Dict[str, Any] = {
    'sources': {
        'primary': 'spotify'
    },
    'api': {
        'timeout': 30,
        'retry': {
            'max_rate_limit_retries': 3,
            'default_retry_after': 1.0,
            'max_retry_after': 60.0,
            'transport_delay': 1.0
        },
        'spotify': {
            'market': None,
            'limit': 10,
            'rate_limit': 0.5
        },
        'itunes': {
            'country': 'us',
            'limit': 10,
            'rate_limit': 0.5
        }
    },
    'thresholds': {
        'accept': 0.85,
        'margin': 0.10
    },
    'resolver': {
        'title_weight': 0.65,
        'max_ambiguous': 5
    },
    'pipeline': {
        'workers': 1
    },
    'naming': {
        'rename_after_apply': False
    }
}


class ConfigManager:
    """
    Configuration manager that loads settings from YAML files.
    Supports environment variable expansion for sensitive values.
    """

    def __init__(
        self,
        config_path: str = "autotag-config.yaml",
        credentials_path: Optional[str] = None
    ):
        self.config_path = Path(config_path)
        self.credentials_path = (
            Path(credentials_path) if credentials_path
            else self.config_path.parent / "credentials.yaml"
        )
        self._config: Dict[str, Any] = {}
        self._credentials: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration and credentials files"""
        self._config = copy.deepcopy(DEFAULT_CONFIG)

        # Load main config over the defaults
        if self.config_path.exists():
            with open(self.config_path, 'r', encoding='utf-8') as f:
                _merge(self._config, yaml.safe_load(f) or {})

        # Load credentials (optional)
        if self.credentials_path.exists():
            with open(self.credentials_path, 'r', encoding='utf-8') as f:
                self._credentials = yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value with dot notation.

        Examples:
            config.get('thresholds.accept')
            config.get('api.spotify.market')

        Environment variables are expanded if value is like ${VAR_NAME}
        """
        return _lookup(self._config, key, default)

    def get_credential(self, key: str) -> Optional[str]:
        """
        Get credential value with dot notation.

        Examples:
            config.get_credential('spotify.client_id')
        """
        return _lookup(self._credentials, key, None)

    def get_api_settings(self, source: str) -> Dict[str, Any]:
        """Get API settings for a specific source"""
        return self.get(f'api.{source}', {}) or {}

    def retry_settings(self) -> Dict[str, Any]:
        """Keyword arguments shared by every catalog source"""
        return {
            'timeout': float(self.get('api.timeout', 30)),
            'max_rate_limit_retries': int(self.get('api.retry.max_rate_limit_retries', 3)),
            'default_retry_after': float(self.get('api.retry.default_retry_after', 1.0)),
            'max_retry_after': float(self.get('api.retry.max_retry_after', 60.0)),
            'transport_delay': float(self.get('api.retry.transport_delay', 1.0))
        }

    @property
    def primary_source(self) -> str:
        return self.get('sources.primary', 'spotify')

    @property
    def workers(self) -> int:
        return int(self.get('pipeline.workers', 1))

    @property
    def spotify_client_id(self) -> Optional[str]:
        return self.get_credential('spotify.client_id') or os.environ.get('SPOTIFY_CLIENT_ID')

    @property
    def spotify_client_secret(self) -> Optional[str]:
        return self.get_credential('spotify.client_secret') or os.environ.get('SPOTIFY_CLIENT_SECRET')

    def __repr__(self) -> str:
        return f"ConfigManager(config={self.config_path}, credentials={self.credentials_path})"


def _lookup(data: Dict[str, Any], key: str, default: Any) -> Any:
    value: Any = data

    for k in key.split('.'):
        if isinstance(value, dict):
            value = value.get(k)
        else:
            return default
        if value is None:
            return default

    # Expand environment variables
    if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
        env_var = value[2:-1]
        return os.environ.get(env_var, default)

    return value


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep-merge override into base"""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
