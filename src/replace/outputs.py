# src/replace/outputs.py — v1
"""Terraform output files published by finished step pipelines.

Each step's pipeline uploads ``<prefix>-<step>/terraform-output.json``
(``terraform output -json``), keyed ``<module>__<output>``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from infralib_agent.core.errors import ReplacementError
from infralib_agent.replace.tags import IndexedKey, select_index
from infralib_agent.storage.base_bucket import BaseBucket

logger = logging.getLogger(__name__)

TERRAFORM_OUTPUT_FILE = "terraform-output.json"


def output_file_path(prefix: str, step_name: str) -> str:
    return f"{prefix}-{step_name}/{TERRAFORM_OUTPUT_FILE}"


def output_key(module_name: str, key: str) -> str:
    return f"{module_name}__{key.replace('/', '_')}"


class OutputCache:
    """Terraform outputs read at most once per replacement pass."""

    def __init__(self, bucket: BaseBucket, prefix: str) -> None:
        self._bucket = bucket
        self._prefix = prefix
        self._outputs: dict[str, dict[str, Any]] = {}

    async def step_outputs(self, step_name: str) -> dict[str, Any]:
        path = output_file_path(self._prefix, step_name)
        if path in self._outputs:
            return self._outputs[path]
        content = await self._bucket.get_file(path)
        if content is None:
            logger.debug("Terraform output file %s not found", path)
            self._outputs[path] = {}
            return self._outputs[path]
        try:
            outputs = json.loads(content)
        except json.JSONDecodeError as e:
            raise ReplacementError(f"failed to parse terraform output file {path}: {e}") from e
        self._outputs[path] = outputs if isinstance(outputs, dict) else {}
        return self._outputs[path]


def output_value(output: Any, key: IndexedKey, tag: str) -> str:
    """Render a terraform output entry for substitution.

    Scalars are unquoted. Lists are joined with "," (string items stay
    quoted unless a single index is taken). Maps become JSON.

    Raises:
        ReplacementError: On an index into a scalar or an unsupported value.
    """
    value = output.get("value") if isinstance(output, dict) else output
    if isinstance(value, (str, int, float, bool)):
        if key.indexed:
            raise ReplacementError(f"output {tag} is not a list, but an index was given")
        return _string_value(value).strip('"')
    if isinstance(value, list):
        values = [_string_value(item) for item in value]
        if not key.indexed:
            return ",".join(values)
        return select_index(values, key, tag)
    if isinstance(value, dict):
        logger.warning("Terraform output %s is a map, returning as json", tag)
        return json.dumps(value, separators=(",", ":"))
    raise ReplacementError(f"output {tag} has unsupported type {type(value).__name__}")


def _string_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, float):
        return f"{value:f}"
    return str(value)
