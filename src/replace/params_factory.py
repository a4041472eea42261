# src/replace/params_factory.py — v1
"""Factory: instantiate the parameter store from configuration."""

from __future__ import annotations

import yaml

from infralib_agent.config.settings import ConfigurationError, Settings
from infralib_agent.replace.params import (
    BaseParameterStore,
    InMemoryParameterStore,
    YamlParameterStore,
)


def create_parameter_store(settings: Settings) -> BaseParameterStore:
    """YAML file store when PARAMETERS_FILE is set, otherwise an empty store.

    Raises:
        ConfigurationError: If the parameters file is missing or malformed.
    """
    if settings.parameters_file is None:
        return InMemoryParameterStore()
    path = settings.parameters_file.expanduser()
    if not path.is_file():
        raise ConfigurationError(f"parameters file {path} not found")
    try:
        return YamlParameterStore(path)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"invalid parameters file {path}: {e}") from e
