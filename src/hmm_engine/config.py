"""
Configuration management system for the HMM engine.

Provides default settings and configuration override capabilities.
"""

import os
import copy
import json
import warnings
from typing import Dict, Any, Optional
from pathlib import Path

import jsonschema

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# Defaults; the model section reproduces the two-state demo
DEFAULT_CONFIG = {
    'hmm': {
        'validation_tolerance': 1e-6
    },
    'training': {
        'max_iterations': 1000,
        'tolerance': 1e-5,
        'regularization_alpha': 0.0,
        'probability_floor': 0.0,
        'n_jobs': 1
    },
    'model': {
        'initial': [0.5, 0.5],
        # transition[to][from]; each column sums to 1
        'transition': [[0.8, 0.3],
                       [0.2, 0.7]],
        'emission': [[0.9, 0.1],
                     [0.2, 0.8]],
        'observations': [0, 0, 1, 0, 1, 1]
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file_logging': False,
        'log_file': 'hmm_engine.log'
    }
}


_NUMBER_LIST = {"type": "array", "items": {"type": "number"}}
_NUMBER_MATRIX = {"type": "array", "items": _NUMBER_LIST}

# JSON schema for configuration files
CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "hmm": {
            "type": "object",
            "properties": {
                "validation_tolerance": {"type": "number", "exclusiveMinimum": 0}
            }
        },
        "training": {
            "type": "object",
            "properties": {
                "max_iterations": {"type": "integer", "minimum": 0},
                "tolerance": {"type": "number", "minimum": 0},
                "regularization_alpha": {"type": "number", "minimum": 0},
                "probability_floor": {"type": "number", "minimum": 0},
                "n_jobs": {"type": "integer", "not": {"const": 0}}
            }
        },
        "model": {
            "type": "object",
            "properties": {
                "initial": _NUMBER_LIST,
                "transition": _NUMBER_MATRIX,
                "emission": _NUMBER_MATRIX,
                "observations": {"type": "array", "items": {"type": "integer"}}
            }
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "string",
                    "enum": list(LOG_LEVELS)
                },
                "format": {"type": "string"},
                "file_logging": {"type": "boolean"},
                "log_file": {"type": "string"}
            }
        }
    }
}


def _log_level(value: str) -> str:
    level = value.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"unknown log level {value!r}")
    return level


def _n_jobs(value: str) -> int:
    n_jobs = int(value)
    if n_jobs == 0:
        raise ValueError("n_jobs must be nonzero")
    return n_jobs


class ConfigManager:
    """Manages configuration settings with override capabilities."""

    def __init__(self):
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._load_environment_overrides()

    def _load_environment_overrides(self):
        """Load configuration overrides from environment variables."""
        config_file = os.getenv('HMM_ENGINE_CONFIG')
        if config_file and Path(config_file).exists():
            self.load_from_file(config_file)

        env_overrides = {
            'HMM_ENGINE_MAX_ITERATIONS': ('training', 'max_iterations', int),
            'HMM_ENGINE_TOLERANCE': ('training', 'tolerance', float),
            'HMM_ENGINE_N_JOBS': ('training', 'n_jobs', _n_jobs),
            'HMM_ENGINE_LOG_LEVEL': ('logging', 'level', _log_level)
        }

        for env_var, (section, key, type_func) in env_overrides.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    self._config[section][key] = type_func(value)
                except ValueError:
                    warnings.warn(f"Ignoring invalid value for {env_var}: {value!r}")

    def get(self, section: str, key: Optional[str] = None) -> Any:
        """Get configuration value(s)."""
        if key is None:
            return self._config.get(section, {})
        return self._config.get(section, {}).get(key)

    def set(self, section: str, key: str, value: Any) -> None:
        """Set configuration value."""
        if section not in self._config:
            self._config[section] = {}
        self._config[section][key] = value

    def update(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration with dictionary."""
        for section, values in config_dict.items():
            if section not in self._config:
                self._config[section] = {}
            if isinstance(values, dict):
                self._config[section].update(values)
            else:
                self._config[section] = values

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file."""
        try:
            with open(config_path, 'r') as f:
                file_config = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}")
        if not isinstance(file_config, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
        try:
            jsonschema.validate(file_config, CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ValueError(f"Config validation failed for {config_path}: {e.message}")
        self.update(file_config)

    def save_to_file(self, config_path: str) -> None:
        """Save current configuration to JSON file."""
        parent = os.path.dirname(config_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(config_path, 'w') as f:
            json.dump(self._config, f, indent=2)

    def get_all(self) -> Dict[str, Any]:
        """Get complete configuration dictionary."""
        return copy.deepcopy(self._config)

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._load_environment_overrides()


# Global configuration manager instance
_config_manager = ConfigManager()


def get_config(section: str, key: Optional[str] = None) -> Any:
    """Get configuration value(s) from global config manager."""
    return _config_manager.get(section, key)


def set_config(section: str, key: str, value: Any) -> None:
    """Set configuration value in global config manager."""
    _config_manager.set(section, key, value)


def update_config(config_dict: Dict[str, Any]) -> None:
    """Update global configuration with dictionary."""
    _config_manager.update(config_dict)


def load_config_file(config_path: str) -> None:
    """Load configuration from file into global config manager."""
    _config_manager.load_from_file(config_path)


def save_config_file(config_path: str) -> None:
    """Save global configuration to file."""
    _config_manager.save_to_file(config_path)


def get_all_config() -> Dict[str, Any]:
    """Get complete configuration dictionary."""
    return _config_manager.get_all()


def reset_config() -> None:
    """Reset global configuration to defaults."""
    _config_manager.reset_to_defaults()
