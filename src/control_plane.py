"""Cloud Foundry control plane access.

The orchestrator only needs three capabilities, described by ControlPlane:
- list_services(): service instances in the targeted space
- get_service(name): one service instance with its last operation
- run_command(*args): run a cf CLI command (create-service, push, ...)

CFControlPlane implements them against a logged-in cf CLI. Service
instances are read from the Cloud Controller v3 API using the target and
space recorded in $CF_HOME/.cf/config.json and a token from `cf oauth-token`.
Commands are run through the cf binary.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol, runtime_checkable

import requests

from common import format_command, run_command
from config import ConfigError, PushConfig

logger = logging.getLogger(__name__)

# Last operation states reported by the Cloud Controller
STATE_IN_PROGRESS = 'in progress'
STATE_SUCCEEDED = 'succeeded'
STATE_FAILED = 'failed'

SERVICE_INSTANCES_PATH = '/v3/service_instances'
REQUEST_TIMEOUT = 30
PAGE_SIZE = 200

# Long-running cf commands: output goes straight to the terminal, no timeout
STREAMED_COMMANDS = {'push'}


class ControlPlaneError(Exception):
    """Error talking to the Cloud Foundry control plane."""


@dataclass(frozen=True)
class LastOperation:
    """Status of the latest action on a service instance."""
    type: str = ''
    state: str = ''
    description: str = ''

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'LastOperation':
        if not data:
            return cls()
        return cls(
            type=data.get('type') or '',
            state=data.get('state') or '',
            description=data.get('description') or '',
        )


@dataclass(frozen=True)
class RemoteService:
    """Service instance as reported by the platform."""
    name: str
    guid: str = ''
    last_operation: LastOperation = field(default_factory=LastOperation)

    @classmethod
    def from_resource(cls, resource: dict) -> 'RemoteService':
        """Create RemoteService from a v3 service_instance resource."""
        return cls(
            name=resource['name'],
            guid=resource.get('guid', ''),
            last_operation=LastOperation.from_dict(resource.get('last_operation')),
        )


@runtime_checkable
class ControlPlane(Protocol):
    """Operations the orchestrator and entry point run against the platform."""

    def list_services(self) -> list[RemoteService]:
        """Service instances in the current space."""

    def get_service(self, name: str) -> RemoteService:
        """Service instance by exact name."""

    def run_command(self, *args: str) -> tuple[str, Optional[ControlPlaneError]]:
        """Run a cf command, returning (output, error or None)."""


@dataclass
class CFTarget:
    """API endpoint and space the cf CLI is currently targeting."""
    api_endpoint: str
    space_guid: str
    space_name: str = ''
    skip_ssl_validation: bool = False

    @classmethod
    def load(cls, cf_home: Path) -> 'CFTarget':
        """Read the target from $CF_HOME/.cf/config.json.

        Raises:
            ConfigError: If the file is missing, invalid, or has no space targeted
        """
        path = Path(cf_home) / '.cf' / 'config.json'
        if not path.exists():
            raise ConfigError(f"cf CLI config not found at {path}. Run 'cf login' first.")
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read cf CLI config {path}: {e}")

        api_endpoint = data.get('Target') or ''
        space = data.get('SpaceFields') or {}
        if not api_endpoint:
            raise ConfigError("No API endpoint targeted. Run 'cf login' first.")
        if not space.get('GUID'):
            raise ConfigError("No space targeted. Run 'cf target -s <space>' first.")

        return cls(
            api_endpoint=api_endpoint.rstrip('/'),
            space_guid=space['GUID'],
            space_name=space.get('Name', ''),
            skip_ssl_validation=bool(data.get('SSLDisabled', False)),
        )


class CFControlPlane:
    """ControlPlane backed by the cf CLI and the Cloud Controller v3 API."""

    def __init__(
        self,
        cf_binary: str = 'cf',
        cf_home: Optional[Path] = None,
        debug: bool = False,
        command_timeout: float = 1800.0,
        session: Optional[requests.Session] = None,
    ):
        self.cf_binary = cf_binary
        self.cf_home = Path(cf_home) if cf_home else Path.home()
        self.debug = debug
        self.command_timeout = command_timeout
        self.session = session or requests.Session()
        self._target: Optional[CFTarget] = None
        self._token: Optional[str] = None

    @classmethod
    def from_config(cls, config: PushConfig) -> 'CFControlPlane':
        return cls(
            cf_binary=config.cf_binary,
            cf_home=config.cf_home,
            debug=config.debug,
            command_timeout=config.command_timeout,
        )

    @property
    def target(self) -> CFTarget:
        if self._target is None:
            try:
                self._target = CFTarget.load(self.cf_home)
            except ConfigError as e:
                raise ControlPlaneError(str(e)) from e
        return self._target

    def run_command(self, *args: str) -> tuple[str, Optional[ControlPlaneError]]:
        """Run `cf <args>`; output is stdout, error set on non-zero exit.

        Commands in STREAMED_COMMANDS print as they run and return no output.
        """
        cmd = [self.cf_binary, *args]
        if self.debug:
            print(f">> {format_command(list(args))}")

        streamed = bool(args) and args[0] in STREAMED_COMMANDS
        if streamed:
            sys.stdout.flush()
            rc, out, err = run_command(cmd, timeout=None, env=self._command_env(), capture=False)
        else:
            rc, out, err = run_command(cmd, timeout=self.command_timeout, env=self._command_env())
        if rc != 0:
            detail = err.strip() or out.strip() or ('see output above' if streamed else 'no output')
            return out, ControlPlaneError(f"cf {args[0] if args else ''} failed (exit {rc}): {detail}")
        return out, None

    def list_services(self) -> list[RemoteService]:
        params = {'space_guids': self.target.space_guid, 'per_page': PAGE_SIZE}
        return [RemoteService.from_resource(r) for r in self._paginate(SERVICE_INSTANCES_PATH, params)]

    def get_service(self, name: str) -> RemoteService:
        params = {'space_guids': self.target.space_guid, 'per_page': PAGE_SIZE}
        # The API splits names on commas; such names need the full listing
        if ',' not in name:
            params['names'] = name
        for resource in self._paginate(SERVICE_INSTANCES_PATH, params):
            if resource.get('name') == name:
                return RemoteService.from_resource(resource)
        raise ControlPlaneError(
            f"Service instance {name} not found in space {self.target.space_name or self.target.space_guid}"
        )

    def _command_env(self) -> dict:
        """Environment for cf commands (CF_HOME pinned to ours)."""
        env = os.environ.copy()
        env['CF_HOME'] = str(self.cf_home)
        return env

    def _refresh_token(self) -> str:
        """Fetch a fresh bearer token from the cf CLI."""
        rc, out, err = run_command(
            [self.cf_binary, 'oauth-token'],
            timeout=REQUEST_TIMEOUT,
            env=self._command_env(),
        )
        token = out.strip().splitlines()[-1].strip() if out.strip() else ''
        if rc != 0 or not token:
            raise ControlPlaneError(
                f"Unable to obtain an access token from 'cf oauth-token': {err.strip() or 'no token'}"
            )
        self._token = token
        return token

    def _get(self, url: str, params: Optional[dict] = None) -> dict:
        """GET a Cloud Controller URL, refreshing the token once on 401."""
        token = self._token or self._refresh_token()
        for attempt in (1, 2):
            logger.debug(f"GET {url} {params or ''}")
            try:
                resp = self.session.get(
                    url,
                    params=params,
                    headers={'Authorization': token, 'Accept': 'application/json'},
                    verify=not self.target.skip_ssl_validation,
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.exceptions.Timeout:
                raise ControlPlaneError(f"Timeout connecting to {self.target.api_endpoint}") from None
            except requests.exceptions.RequestException as e:
                raise ControlPlaneError(f"Cannot connect to {self.target.api_endpoint}: {e}") from e

            if resp.status_code == 401 and attempt == 1:
                logger.debug("Access token rejected, refreshing")
                token = self._refresh_token()
                continue
            if resp.status_code != 200:
                raise ControlPlaneError(
                    f"Unexpected API response from {url}: {resp.status_code} - {resp.text[:200]}"
                )
            try:
                data: dict = resp.json()
            except ValueError as e:
                raise ControlPlaneError(f"Invalid JSON from {url}: {e}") from e
            return data
        raise ControlPlaneError(f"Access token rejected by {self.target.api_endpoint}")

    def _paginate(self, path: str, params: dict) -> Iterator[dict[str, Any]]:
        """Yield resources across all pages of a v3 list endpoint."""
        url: Optional[str] = f"{self.target.api_endpoint}{path}"
        page_params: Optional[dict] = params
        while url:
            data = self._get(url, page_params)
            yield from data.get('resources', [])
            next_page = (data.get('pagination') or {}).get('next') or {}
            url = next_page.get('href')
            # next.href already carries the query string
            page_params = None
