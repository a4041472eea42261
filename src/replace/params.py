# src/replace/params.py — v1
"""Parameter store backends consumed by the template engine.

Values are strings; list values are stored comma-joined and typed
``StringList`` so indexed addressing can split them back.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from infralib_agent.core.errors import ParameterNotFoundError

logger = logging.getLogger(__name__)

STRING = "String"
STRING_LIST = "StringList"


@dataclass(frozen=True)
class Parameter:
    value: str
    type: str = STRING


class BaseParameterStore(ABC):
    """Read-only view of a remote parameter store."""

    @abstractmethod
    async def get(self, name: str) -> Parameter:
        """Fetch a parameter by full name.

        Raises:
            ParameterNotFoundError: If the parameter does not exist.
        """


class InMemoryParameterStore(BaseParameterStore):
    """Dict-backed store, also used to publish values during a run."""

    def __init__(self, parameters: dict[str, Any] | None = None) -> None:
        self._parameters: dict[str, Parameter] = {}
        for name, value in (parameters or {}).items():
            self.put(name, value)

    def put(self, name: str, value: Any) -> None:
        self._parameters[name] = to_parameter(value)

    async def get(self, name: str) -> Parameter:
        try:
            return self._parameters[name]
        except KeyError:
            raise ParameterNotFoundError(name) from None


class YamlParameterStore(InMemoryParameterStore):
    """Parameters read from a flat YAML mapping of name to value."""

    def __init__(self, path: Path) -> None:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"parameters file {path} must contain a mapping")
        super().__init__({str(name): value for name, value in data.items()})
        logger.info("Loaded %d parameters from %s", len(data), path)


def to_parameter(value: Any) -> Parameter:
    if isinstance(value, Parameter):
        return value
    if isinstance(value, (list, tuple)):
        return Parameter(",".join(str(item) for item in value), STRING_LIST)
    if isinstance(value, bool):
        return Parameter("true" if value else "false")
    return Parameter(str(value))
