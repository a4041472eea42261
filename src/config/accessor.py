# src/config/accessor.py — v1
"""Dotted-path lookups into the rollout Config for ``{{ config.<path> }}`` tags.

Only string fields of the root document are addressable. ``prefix`` is
resolved by the template engine itself because it must return the active
cloud prefix rather than the configured one.
"""

from __future__ import annotations

from typing import Callable

from infralib_agent.core.errors import ConfigValueNotFoundError
from infralib_agent.core.models import Config

CONFIG_ACCESSORS: dict[str, Callable[[Config], str]] = {
    "prefix": lambda c: c.prefix,
    "version": lambda c: c.version,
    "agent_version": lambda c: c.agent_version,
    "base_image_version": lambda c: c.base_image_version,
    "base_image_source": lambda c: c.base_image_source,
}

# camelCase spellings accepted in existing config documents
_ALIASES = {
    "agentVersion": "agent_version",
    "baseImageVersion": "base_image_version",
    "baseImageSource": "base_image_source",
}


def get_config_value(config: Config, path: str) -> str:
    """Return the string value at a dotted path.

    Raises:
        ConfigValueNotFoundError: If the path is not addressable.
    """
    key = _ALIASES.get(path, path)
    accessor = CONFIG_ACCESSORS.get(key)
    if accessor is None:
        raise ConfigValueNotFoundError(path)
    return accessor(config)
