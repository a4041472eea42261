# src/main.py — v2
"""CLI entry point — run, update, checksums commands.

Usage:
    infralib-agent run [--steps a,b]
    infralib-agent update [--steps a,b]
    infralib-agent checksums <release_dir> [-o checksums.txt]

Deployment settings come from .env / environment (see config.settings).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from infralib_agent.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="infralib-agent",
        description=f"infralib-agent v{__version__} — staged module rollout",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Apply the currently due module versions",
    )
    p_run.add_argument(
        "--steps", default=None,
        help="Comma-separated steps to process (default: all)",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- update ---
    p_update = subparsers.add_parser(
        "update", help="Step modules through every newer release",
    )
    p_update.add_argument(
        "--steps", default=None,
        help="Comma-separated steps to process (default: all)",
    )
    p_update.set_defaults(func=_cmd_update)

    # --- checksums ---
    p_checksums = subparsers.add_parser(
        "checksums", help="Write the checksum manifest of a release directory",
    )
    p_checksums.add_argument(
        "release_dir", type=Path, help="Release root holding modules/ and providers/",
    )
    p_checksums.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Manifest file (default: print to stdout)",
    )
    p_checksums.set_defaults(func=_cmd_checksums)

    return parser


async def _cmd_run(args: argparse.Namespace) -> int:
    return await _rollout(args, "run")


async def _cmd_update(args: argparse.Namespace) -> int:
    return await _rollout(args, "update")


async def _rollout(args: argparse.Namespace, command: str) -> int:
    """Load config and state, then process releases for command."""
    from infralib_agent.config.loader import load_config, select_runnable_steps, validate_config
    from infralib_agent.config.settings import load_settings
    from infralib_agent.logging.context import set_run_context
    from infralib_agent.logging.logger import setup_logging
    from infralib_agent.pipeline.executor_factory import create_executor
    from infralib_agent.pipeline.orchestrator import RolloutOrchestrator
    from infralib_agent.replace.engine import TemplateEngine
    from infralib_agent.replace.params_factory import create_parameter_store
    from infralib_agent.sources.registry import build_registry, create_source_storage
    from infralib_agent.state.store import StateStore
    from infralib_agent.storage.local_bucket import LocalBucket

    overrides: dict[str, object] = {}
    if args.steps is not None:
        overrides["steps"] = args.steps
    settings = load_settings(**overrides)
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    set_run_context(uuid.uuid4().hex[:12])

    config = load_config(settings.config_file, settings.base_config_file)
    prefix = settings.prefix or config.prefix
    if not config.prefix:
        config.prefix = prefix

    bucket = LocalBucket(settings.bucket_root)
    state_store = StateStore(bucket)
    state = await state_store.load()
    validate_config(config, state)
    if settings.base_config_file is not None:
        state.base_config_version = config.version

    parameters = create_parameter_store(settings)
    config = await TemplateEngine(config, prefix, parameters, bucket).resolve_config(config)
    steps = select_runnable_steps(config, settings.steps_list)

    cache_dir = settings.source_cache_dir.expanduser()
    registry = await build_registry(
        config, config.steps, state, lambda url: create_source_storage(url, cache_dir)
    )

    orchestrator = RolloutOrchestrator(
        config=config,
        steps=steps,
        state=state,
        registry=registry,
        state_store=state_store,
        bucket=bucket,
        executor=create_executor(settings, prefix),
        parameters=parameters,
        prefix=prefix,
        provider_type=settings.provider_type,
        account_id=settings.account_id,
        parameter_root=settings.parameter_root,
        allow_parallel=settings.allow_parallel,
    )
    logger.info("Processing %s for %d steps with prefix %s", command, len(steps), prefix)
    await orchestrator.process(command)
    return 0


async def _cmd_checksums(args: argparse.Namespace) -> int:
    """Compute and write a release's checksum manifest."""
    from infralib_agent.sources.checksums import compute_checksums, format_manifest

    release_dir: Path = args.release_dir
    if not release_dir.is_dir():
        logger.error("Not a directory: %s", release_dir)
        return 1

    manifest = format_manifest(compute_checksums(release_dir))
    if args.output is None:
        print(manifest, end="")
    else:
        args.output.write_text(manifest, encoding="utf-8")
        logger.info("Wrote %s", args.output)
    return 0


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


if __name__ == "__main__":
    sys.exit(main())
