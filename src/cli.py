#!/usr/bin/env python3
"""CLI entry point for create-service-push.

Creates the services listed in a services manifest, then runs `cf push`
with the remaining arguments:

    cf-create-service-push create-service-push [--service-manifest <file>]
        [--no-service-manifest] [--no-push] [<cf push args>...]

Options:
- --service-manifest <file>: Services manifest (default: services-manifest.yml)
- --no-service-manifest: Skip service creation entirely
- --no-push: Create the services but do not push the application
"""

import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from config import COMMAND_NAME, ConfigError, PushConfig
from control_plane import CFControlPlane, ControlPlane
from manifest import ManifestError, ManifestNotFoundError, load_manifest
from orchestrator import ServiceOrchestrator

logger = logging.getLogger(__name__)

# Commands (name -> help text)
COMMANDS = {
    COMMAND_NAME: (
        "Works in the same manner as cf push, except that it will create services "
        "defined in a services-manifest.yml file first before performing a cf push."
    ),
}

USAGE = f"""Usage: cf-create-service-push {COMMAND_NAME} [options] [<cf push args>...]

Options:
  --service-manifest <MANIFEST_FILE>  Specify the fullpath and filename of the services
                                      creation manifest. Defaults to services-manifest.yml.
  --no-service-manifest               Specifies that there is no service creation manifest
  --no-push                           Create the services but do not push the application"""


def get_version() -> str:
    """Get the installed package version."""
    try:
        return version('cf-create-service-push')
    except PackageNotFoundError:
        return 'dev'


def _setup_logging(debug: bool) -> None:
    """Configure logging (stderr, DEBUG level when requested)."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


def create_service_push(args: list, control_plane: Optional[ControlPlane] = None) -> int:
    """Run create-service-push.

    Args:
        args: Arguments after the command name
        control_plane: Platform access (default: CFControlPlane from config)

    Returns:
        Exit code (1 only for configuration or manifest errors)
    """
    try:
        config = PushConfig.from_args(args, os.environ)
    except ConfigError as e:
        print(f"ERROR: {e}")
        return 1

    _setup_logging(config.debug)
    logger.debug(f"Configuration: {config}")

    if control_plane is None:
        control_plane = CFControlPlane.from_config(config)

    if config.manifest_path is not None:
        path = config.manifest_path
        try:
            if not path.exists():
                raise ManifestNotFoundError(f"The file {path} was not found.")
            print(f"Found ManifestFile: {path}")
            manifest = load_manifest(path)
        except ManifestError as e:
            print(f"ERROR: {e}")
            return 1

        orchestrator = ServiceOrchestrator(control_plane, poll=config.poll)
        orchestrator.create_services(manifest)

    if config.push:
        print(f"Performing a CF Push with arguments {' '.join(config.deploy_args)}")
        output, error = control_plane.run_command('push', *config.deploy_args)
        if output:
            print(output)
        if error is not None:
            print(f"ERROR while pushing: {error}")

    return 0


def main(argv: Optional[list] = None) -> int:
    """Dispatch to the command named by the first argument."""
    argv = sys.argv[1:] if argv is None else argv

    if not argv or argv[0] in ('help', '-h', '--help'):
        print(USAGE)
        print()
        print("Commands:")
        for name, help_text in COMMANDS.items():
            print(f"  {name:22} {help_text}")
        return 0 if argv else 1

    if argv[0] == '--version':
        print(f"cf-create-service-push {get_version()}")
        return 0

    command = argv[0]
    if command != COMMAND_NAME:
        print(f"Error: Unknown command '{command}'")
        print(f"Available commands: {', '.join(COMMANDS)}")
        return 1

    try:
        return create_service_push(argv[1:])
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == '__main__':
    sys.exit(main())
