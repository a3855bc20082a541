"""Run configuration for create-service-push.

Configuration is assembled once from the command arguments and the
environment, then passed by value to the orchestrator:
- Command flags: --service-manifest, --no-service-manifest, --no-push
- Environment: DEBUG, CF_HOME, CF_BINARY, CSP_POLL_*, CSP_COMMAND_TIMEOUT

Flags are scanned left to right. Everything that is not one of our flags is
kept, in order, as the deploy arguments forwarded to `cf push`.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

COMMAND_NAME = 'create-service-push'
DEFAULT_MANIFEST_FILE = 'services-manifest.yml'

FLAG_SERVICE_MANIFEST = '--service-manifest'
FLAG_NO_SERVICE_MANIFEST = '--no-service-manifest'
FLAG_NO_PUSH = '--no-push'


class ConfigError(Exception):
    """Configuration error."""


def get_cf_home(env: Optional[Mapping[str, str]] = None) -> Path:
    """Get the directory holding the cf CLI's .cf/ state.

    Resolution order:
    1. CF_HOME environment variable
    2. User home directory
    """
    env = os.environ if env is None else env
    if cf_home := env.get('CF_HOME'):
        return Path(cf_home)
    return Path.home()


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    """Read a positive number from the environment."""
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")
    if value <= 0:
        raise ConfigError(f"{name} must be greater than zero, got '{raw}'")
    return value


@dataclass(frozen=True)
class PollSettings:
    """Timing for service provisioning status polls.

    Attributes:
        interval: Delay before the second poll (seconds)
        max_interval: Upper bound for the delay between polls (seconds)
        backoff: Multiplier applied to the delay after each poll
        timeout: Give up when no terminal state after this long (seconds)
    """
    interval: float = 2.0
    max_interval: float = 15.0
    backoff: float = 1.5
    timeout: float = 1800.0

    def __post_init__(self):
        if self.backoff < 1:
            raise ConfigError(f"Poll backoff must be at least 1, got {self.backoff}")
        if self.max_interval < self.interval:
            raise ConfigError(
                f"Poll max interval ({self.max_interval}s) is shorter than "
                f"the poll interval ({self.interval}s)"
            )

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> 'PollSettings':
        """Create PollSettings from CSP_POLL_* environment variables.

        Without CSP_POLL_MAX_INTERVAL the maximum stretches to cover a
        larger CSP_POLL_INTERVAL.
        """
        defaults = cls()
        interval = _positive_float(env, 'CSP_POLL_INTERVAL', defaults.interval)
        return cls(
            interval=interval,
            max_interval=_positive_float(
                env, 'CSP_POLL_MAX_INTERVAL', max(interval, defaults.max_interval)),
            backoff=_positive_float(env, 'CSP_POLL_BACKOFF', defaults.backoff),
            timeout=_positive_float(env, 'CSP_POLL_TIMEOUT', defaults.timeout),
        )


@dataclass(frozen=True)
class PushConfig:
    """Everything one create-service-push run needs.

    Attributes:
        manifest_path: Services manifest to process (None = skip services)
        push: Forward deploy_args to `cf push` after creating services
        deploy_args: Arguments forwarded to `cf push`
        debug: Echo every cf command line before running it
        cf_binary: cf executable name or path
        cf_home: Directory containing .cf/config.json
        command_timeout: Timeout for each cf command (seconds)
        poll: Provisioning status poll timing
    """
    manifest_path: Optional[Path] = Path(DEFAULT_MANIFEST_FILE)
    push: bool = True
    deploy_args: tuple[str, ...] = ()
    debug: bool = False
    cf_binary: str = 'cf'
    cf_home: Path = field(default_factory=Path.home)
    command_timeout: float = 1800.0
    poll: PollSettings = field(default_factory=PollSettings)

    @classmethod
    def from_args(cls, args: list[str], env: Optional[Mapping[str, str]] = None) -> 'PushConfig':
        """Build config from the arguments following the command name.

        Raises:
            ConfigError: If --service-manifest has no value or an
                environment override is invalid
        """
        env = os.environ if env is None else env

        manifest_path: Optional[Path] = Path(DEFAULT_MANIFEST_FILE)
        manifest_chosen = False
        push = True
        deploy_args: list[str] = []

        i = 0
        while i < len(args):
            arg = args[i]
            if arg == FLAG_SERVICE_MANIFEST:
                if i + 1 >= len(args) or not args[i + 1]:
                    raise ConfigError(f"{FLAG_SERVICE_MANIFEST} requires a file path")
                if not manifest_chosen:
                    manifest_path = Path(args[i + 1])
                    manifest_chosen = True
                i += 2
                continue
            if arg == FLAG_NO_SERVICE_MANIFEST:
                if not manifest_chosen:
                    manifest_path = None
                    manifest_chosen = True
            elif arg == FLAG_NO_PUSH:
                push = False
            else:
                deploy_args.append(arg)
            i += 1

        return cls(
            manifest_path=manifest_path,
            push=push,
            deploy_args=tuple(deploy_args),
            debug=bool(env.get('DEBUG')),
            cf_binary=env.get('CF_BINARY') or 'cf',
            cf_home=get_cf_home(env),
            command_timeout=_positive_float(env, 'CSP_COMMAND_TIMEOUT', 1800.0),
            poll=PollSettings.from_env(env),
        )
