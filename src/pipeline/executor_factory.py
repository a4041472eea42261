# src/pipeline/executor_factory.py — v1
"""Factory: instantiate the pipeline executor from configuration."""

from __future__ import annotations

from infralib_agent.config.settings import ConfigurationError, Settings
from infralib_agent.pipeline.executor import BasePipelineExecutor, DryRunExecutor


def create_executor(settings: Settings, prefix: str) -> BasePipelineExecutor:
    """Create the executor selected by PIPELINE_TYPE.

    Raises:
        ConfigurationError: If the pipeline type is not supported.
    """
    if settings.pipeline_type == "dry-run":
        return DryRunExecutor(prefix)

    if settings.pipeline_type == "local":
        from infralib_agent.pipeline.local_executor import LocalPipelineExecutor

        return LocalPipelineExecutor(
            command=settings.pipeline_command,
            prefix=prefix,
            bucket=str(settings.bucket_root.expanduser()),
            logs_path=settings.pipeline_logs_path,
        )

    raise ConfigurationError(f"Unsupported pipeline type: {settings.pipeline_type!r}")
