"""
CLI Module

Architectural Intent:
- Command-line interface for Strata: validate, apply, destroy, outputs
- Delegates to application use cases via the composition root
- Supports --verbose/--debug flags for log level control
- SIGINT sets the run's cancel event; in-flight waits stop, nothing rolls back

Exit codes:
- 0 when every change-set entry reached Succeeded, Deleted or no-op
- 1 otherwise (validation errors, resource failures, fatal state errors)
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
import traceback
from typing import Optional

from strata.application.dtos.stack_dtos import DestroyRequest
from strata.composition_root import StrataContainer, create_container
from strata.domain.errors import StrataError, ValidationError
from strata.infrastructure.config import StrataConfig, load_config
from strata.infrastructure.logging import configure_logging, resolve_level
from strata.infrastructure.stack_loader import load_stack, parse_param_overrides
from strata.presentation.cli.reporter import Reporter

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strata",
        description="Strata: declarative infrastructure stack orchestrator",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to config file (default: strata.json)"
    )

    stack_opts = argparse.ArgumentParser(add_help=False)
    stack_opts.add_argument("--stack-file", "-f", help="Path to the stack declaration (JSON)")
    stack_opts.add_argument("--stack", "-s", help="Stack name (overrides the declaration)")
    stack_opts.add_argument("--region", "-r", help="Target region")
    stack_opts.add_argument(
        "--param", "-p", action="append", default=[], metavar="KEY=VALUE",
        help="Override a stack parameter (repeatable, JSON-decoded)",
    )
    stack_opts.add_argument(
        "--format", choices=("text", "json"), default="text", help="Output format"
    )

    run_opts = argparse.ArgumentParser(add_help=False)
    run_opts.add_argument("--concurrency", type=int, help="Maximum concurrent operations")
    run_opts.add_argument("--poll-interval", type=float, help="Initial poll interval in seconds")
    run_opts.add_argument("--timeout", type=float, help="Per-resource wait timeout in seconds")
    run_opts.add_argument(
        "--continue-on-failure", action="store_true",
        help="Keep provisioning independent resources after a failure",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser(
        "validate", parents=[stack_opts],
        help="Validate a stack and show the planned change-set",
    )
    subparsers.add_parser(
        "apply", parents=[stack_opts, run_opts],
        help="Create or update resources to match the declaration",
    )
    destroy_parser = subparsers.add_parser(
        "destroy", parents=[stack_opts, run_opts],
        help="Delete every resource tracked for a stack",
    )
    destroy_parser.add_argument(
        "--confirm", default="", metavar="STACK",
        help="Must equal the stack name",
    )
    subparsers.add_parser(
        "outputs", parents=[stack_opts],
        help="Show tracked resources, outputs and recent runs",
    )
    return parser


def apply_overrides(config: StrataConfig, args: argparse.Namespace) -> StrataConfig:
    """Layer CLI flags over the loaded configuration."""
    stack = config.stack
    if getattr(args, "stack_file", None):
        stack = dataclasses.replace(stack, definition=args.stack_file)
    if getattr(args, "stack", None):
        stack = dataclasses.replace(stack, name=args.stack)
    if getattr(args, "region", None):
        stack = dataclasses.replace(stack, region=args.region)

    engine_changes = {}
    if getattr(args, "concurrency", None) is not None:
        engine_changes["max_concurrency"] = args.concurrency
    if getattr(args, "poll_interval", None) is not None:
        engine_changes["poll_interval"] = args.poll_interval
    if getattr(args, "timeout", None) is not None:
        engine_changes["timeout"] = args.timeout
    if getattr(args, "continue_on_failure", False):
        engine_changes["failure_policy"] = "continue"
    engine = dataclasses.replace(config.engine, **engine_changes)

    return dataclasses.replace(config, stack=stack, engine=engine)


def _load_definition(config: StrataConfig, args: argparse.Namespace):
    return load_stack(
        config.stack.definition,
        stack_name=config.stack.name or None,
        region=config.stack.region or None,
        overrides=parse_param_overrides(args.param),
    )


def _stack_name(config: StrataConfig, args: argparse.Namespace) -> str:
    if config.stack.name:
        return config.stack.name
    return _load_definition(config, args).stack_name


def _install_sigint(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        logger.debug("Signal handlers unsupported on this platform; Ctrl+C aborts immediately")


async def run_command(
    args: argparse.Namespace,
    container: StrataContainer,
    reporter: Reporter,
    cancel_event: Optional[asyncio.Event] = None,
) -> int:
    """Execute one subcommand and return its exit code."""
    config = container.config

    if args.command == "validate":
        report = await container.validate_stack.execute(_load_definition(config, args))
        reporter.validation(report)
        return report.exit_code

    if args.command == "apply":
        definition = _load_definition(config, args)
        validation = await container.validate_stack.execute(definition)
        if not validation.valid:
            reporter.errors(validation.errors)
            return 1
        report = await container.apply_stack.execute(definition, cancel_event)
        reporter.run(report)
        return report.exit_code

    if args.command == "destroy":
        request = DestroyRequest(_stack_name(config, args), args.confirm)
        report = await container.destroy_stack.execute(request, cancel_event)
        reporter.run(report)
        return report.exit_code

    if args.command == "outputs":
        description = await container.describe_stack.execute(_stack_name(config, args))
        reporter.outputs(description)
        return 0

    raise ValueError(f"Unknown command {args.command!r}")


async def async_main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        configure_logging(level=logging.DEBUG)
    elif args.verbose:
        configure_logging(level=logging.INFO)
    else:
        configure_logging(level=logging.WARNING)

    verbose = args.verbose or args.debug

    if not args.command:
        parser.print_help()
        return

    try:
        config = apply_overrides(load_config(args.config), args)
    except ValueError as e:
        print(f"[-] Invalid configuration: {e}")
        sys.exit(1)
    if verbose:
        level = logging.DEBUG if args.debug else logging.INFO
    else:
        level = resolve_level(config.log_level)
    configure_logging(level=level, json_format=config.log_format == "json")

    reporter = Reporter(fmt=args.format)
    try:
        container = create_container(config, observers=[reporter.on_event])
    except (ValueError, StrataError) as e:
        print(f"[-] Startup failed: {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)

    if container.telemetry is not None:
        await container.telemetry.initialize()

    cancel_event = asyncio.Event()
    _install_sigint(cancel_event)

    try:
        exit_code = await run_command(args, container, reporter, cancel_event)
    except ValidationError as e:
        reporter.errors([e])
        if verbose:
            traceback.print_exc()
        exit_code = 1
    except StrataError as e:
        reporter.error(e)
        if verbose:
            traceback.print_exc()
        exit_code = 1
    finally:
        if container.telemetry is not None:
            await container.telemetry.export()
        container.close()

    if cancel_event.is_set():
        print("[*] Run cancelled; resources in progress were left as-is.", file=sys.stderr)
    if exit_code:
        sys.exit(exit_code)


def main():
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
