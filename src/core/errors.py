# src/core/errors.py — v1
"""Error taxonomy shared by the resolver, template engine and orchestrator.

Resolution errors abort the run. ParameterNotFoundError and pipeline
failures get a single sequential retry. Template syntax errors are fatal
and carry the offending content for diagnosis.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all rollout errors."""


class VersionResolutionError(AgentError):
    """Malformed version string or a release missing from its source."""


class SourceError(AgentError):
    """A module source could not be read."""


class SourceFileNotFoundError(SourceError):
    """Requested file does not exist in the given source release."""

    def __init__(self, path: str, release: str) -> None:
        self.path = path
        self.release = release
        super().__init__(f"file {path} not found in release {release}")


class ReplacementError(AgentError):
    """Unknown tag type, malformed key or ambiguous typed module lookup."""


class ConfigValueNotFoundError(ReplacementError):
    """A config.<path> tag names a field that does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"config value {path} not found")


class IndexOutOfRangeError(ReplacementError):
    """Indexed list addressing went past the end of the value."""


class ParameterNotFoundError(AgentError):
    """Parameter is missing from both the output cache and the parameter store."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"parameter {name} not found")


class TemplateSyntaxError(AgentError):
    """Substituted content no longer parses as HCL or YAML."""

    def __init__(self, file_name: str, content: str, reason: str) -> None:
        self.file_name = file_name
        self.content = content
        self.reason = reason
        super().__init__(f"failed to parse {file_name}: {reason}")


class PipelineExecutionError(AgentError):
    """Plan or apply of a step failed."""


class PipelineRejectedError(PipelineExecutionError):
    """Execution stopped by a reject policy or a declined manual approval."""


class StateStoreError(AgentError):
    """State document could not be read or written."""


class RolloutError(AgentError):
    """One or more steps failed during a release iteration."""
