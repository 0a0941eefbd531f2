# notedigest/core/cli.py
"""
CLI for the notedigest manager loop, one-off runs, and app validation.

App locators follow the usual `module.path:variable` convention:
1. Dotted module path: `notedigest manager myproject.digest:app`
2. File path: `notedigest manager myproject/digest.py:app`
3. Convenience: if cwd has pyproject.toml, cwd is added to sys.path
"""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys

from notedigest.core.app import NoteDigest
from notedigest.core.errors import (
    ConfigurationError,
    ErrorCode,
    NoteDigestError,
    ScheduleRuntimeError,
    ValidationReport,
)
from notedigest.core.logging import get_logger
from notedigest.core.store.postgres import PostgresScheduleStore
from notedigest.core.types.status import ExecutionStatus
from notedigest.core.utils.imports import (
    import_file_path,
    setup_sys_path_from_cwd,
)

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _resolve_module_argument(args: argparse.Namespace) -> str:
    """Return module path from --module or positional, error if missing."""
    module_path = getattr(args, 'module', None) or getattr(args, 'module_pos', None)
    if not module_path:
        raise ConfigurationError(
            message='module path is required',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=['no --module flag or positional module argument provided'],
            help_text=(
                'provide module path in one of these formats:\n'
                '  notedigest manager myproject.digest:app  (recommended)\n'
                '  notedigest manager myproject/digest.py:app  (file path)\n'
                '  notedigest manager myproject.digest  (auto-discover app variable)'
            ),
        )
    return module_path


def _parse_locator(locator: str) -> tuple[str, str | None]:
    """
    Parse a module locator into (module_path, attribute_name).

    - "myproject.digest:app" -> ("myproject.digest", "app")
    - "myproject/digest.py" -> ("myproject/digest.py", None)
    """
    if ':' in locator:
        module_part, attr = locator.rsplit(':', 1)
        return (module_part, attr)
    return (locator, None)


def _is_file_path(path: str) -> bool:
    return path.endswith('.py') or os.path.sep in path or '/' in path


def discover_app(module_locator: str) -> tuple[NoteDigest, str]:
    """
    Import a module and find its NoteDigest instance.

    Returns:
        (app_instance, variable_name)
    """
    logger = get_logger('cli')

    project_root = setup_sys_path_from_cwd()
    if project_root:
        logger.info(f'Added project root to sys.path: {project_root}')

    module_path, attr_name = _parse_locator(module_locator)

    if _is_file_path(module_path):
        if not module_path.endswith('.py'):
            module_path += '.py'
        file_path = os.path.realpath(module_path)
        if not os.path.exists(file_path):
            raise FileNotFoundError(f'Module file not found: {file_path}')
        module = import_file_path(file_path)
    else:
        try:
            module = importlib.import_module(module_path)
        except ModuleNotFoundError as e:
            raise ConfigurationError(
                message=f'module not found: {module_path}',
                code=ErrorCode.CLI_INVALID_ARGS,
                notes=[str(e), f'sys.path: {sys.path[:5]}...'],
                help_text=(
                    'ensure you are running from the correct directory\n'
                    'or set PYTHONPATH to include your project root'
                ),
            ) from e
    module_name = module.__name__

    if attr_name:
        if not hasattr(module, attr_name):
            raise AttributeError(
                f"Module '{module_name}' has no attribute '{attr_name}'"
            )
        obj = getattr(module, attr_name)
        if not isinstance(obj, NoteDigest):
            raise TypeError(
                f"'{attr_name}' in module '{module_name}' is not a NoteDigest instance "
                f'(got {type(obj).__name__})'
            )
        app, var_name = obj, attr_name
    else:
        app_instances = [
            (obj, name)
            for name, obj in vars(module).items()
            if not name.startswith('_') and isinstance(obj, NoteDigest)
        ]
        if not app_instances:
            raise AttributeError(
                f'No NoteDigest instance found in {module_name}. '
                'Specify the variable name: module.path:variable'
            )
        if len(app_instances) > 1:
            var_names = [name for _, name in app_instances]
            raise AttributeError(
                f'Multiple NoteDigest instances found in {module_name}: {var_names}. '
                'Specify which one: module.path:variable'
            )
        app, var_name = app_instances[0]

    logger.info(f"Discovered notedigest app '{var_name}' from {module_name}")
    return app, var_name


def setup_logging(loglevel: str) -> None:
    """Configure logging level globally."""
    from notedigest.core.logging import set_default_level

    level = getattr(logging, loglevel.upper(), logging.INFO)
    set_default_level(level)

    for name in list(logging.Logger.manager.loggerDict):
        if isinstance(name, str) and (name == 'notedigest' or name.startswith('notedigest.')):
            lgr = logging.getLogger(name)
            lgr.setLevel(level)
            for handler in lgr.handlers:
                handler.setLevel(level)


def _load_app(args: argparse.Namespace) -> NoteDigest:
    """Discover the app or exit(1) with the error logged."""
    logger = get_logger('cli')
    try:
        app, _var_name = discover_app(_resolve_module_argument(args))
    except NoteDigestError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f'Failed to discover app: {e}')
        sys.exit(1)
    return app


def manager_command(args: argparse.Namespace) -> None:
    """Handle manager command: run the background sweep loop until interrupted."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)
    app = _load_app(args)

    try:
        manager = app.get_manager()
    except NoteDigestError as e:
        logger.error(str(e))
        sys.exit(1)

    for user_id in args.users or []:
        manager.watch_user(user_id)
    if not manager.watched_users:
        logger.warning('No users to watch; the manager will sweep nothing')

    async def run_manager() -> None:
        store = app.get_store()
        if isinstance(store, PostgresScheduleStore):
            logger.info('Ensuring Postgres schema is initialized...')
            await store.ensure_schema_initialized()

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info('Received interrupt signal, stopping manager...')
            manager.request_stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                pass

        try:
            await manager.run_forever()
        finally:
            if isinstance(store, PostgresScheduleStore):
                await store.close_async()

    try:
        asyncio.run(run_manager())
    except KeyboardInterrupt:
        logger.info('Manager interrupted by user')
    except Exception as e:
        logger.error(f'Manager failed: {e}', exc_info=True)
        sys.exit(1)


def run_command(args: argparse.Namespace) -> None:
    """Handle run command: execute one schedule now and print the execution."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)
    app = _load_app(args)

    async def run_once() -> None:
        manager = app.get_manager()
        store = app.get_store()
        try:
            execution = await manager.execute_now(args.schedule_id, args.user_id)
        finally:
            if isinstance(store, PostgresScheduleStore):
                await store.close_async()

        print(execution.model_dump_json(by_alias=True, indent=2))
        if execution.status == ExecutionStatus.FAILED:
            sys.exit(1)

    try:
        asyncio.run(run_once())
    except NoteDigestError as e:
        logger.error(str(e))
        sys.exit(1)
    except ScheduleRuntimeError as e:
        logger.error(f'{type(e).__name__}: {e.message}')
        sys.exit(1)


def check_command(args: argparse.Namespace) -> None:
    """Handle check command: validate the app without starting services."""
    setup_logging(args.loglevel)
    app = _load_app(args)

    errors = app.check(live=args.live)
    if errors:
        report = ValidationReport('check')
        for error in errors:
            report.add(error)
        print(report.format_rust_style(), file=sys.stderr)
        sys.exit(1)

    print(
        f'ok: all validations passed\n'
        f'  {len(app.sinks)} delivery sink(s), '
        f'{len(app.config.manager.user_ids)} watched user(s)'
    )
    sys.exit(0)


def _add_app_arguments(parser: argparse.ArgumentParser, default_level: str) -> None:
    parser.add_argument(
        '-m',
        '--module',
        dest='module',
        help='Module path (e.g., myproject.digest:app)',
    )
    parser.add_argument(
        'module_pos',
        nargs='?',
        help='Module path (e.g., myproject.digest:app)',
    )
    parser.add_argument(
        '--loglevel',
        choices=LOG_LEVELS,
        default=default_level,
        type=str.upper,
        help=f'Logging level (default: {default_level})',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='notedigest',
        description='notedigest - scheduled digests of workspace notes',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the background sweep loop
  notedigest manager myproject.digest:app --user u_123

  # Execute one schedule now
  notedigest run myproject.digest:app --schedule-id s_1 --user-id u_123

  # Validate configuration without starting services
  notedigest check myproject.digest:app --live
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    manager_parser = subparsers.add_parser(
        'manager', help='Run the schedule manager loop'
    )
    _add_app_arguments(manager_parser, 'INFO')
    manager_parser.add_argument(
        '--user',
        dest='users',
        action='append',
        help='User id to watch, in addition to ManagerConfig.user_ids (repeatable)',
    )

    run_parser = subparsers.add_parser('run', help='Execute one schedule now')
    _add_app_arguments(run_parser, 'INFO')
    run_parser.add_argument('--schedule-id', required=True, help='Schedule to execute')
    run_parser.add_argument('--user-id', required=True, help='Owner of the schedule')

    check_parser = subparsers.add_parser(
        'check', help='Validate app configuration without starting services'
    )
    _add_app_arguments(check_parser, 'WARNING')
    check_parser.add_argument(
        '--live',
        action='store_true',
        default=False,
        help='Also check store connectivity and schema',
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        match args.command:
            case 'manager':
                manager_command(args)
            case 'run':
                run_command(args)
            case 'check':
                check_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
