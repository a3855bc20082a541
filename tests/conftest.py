"""Shared pytest fixtures for create-service-push tests."""

import sys
from pathlib import Path
from typing import Optional

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from control_plane import ControlPlaneError, LastOperation, RemoteService  # noqa: E402


class FakeControlPlane:
    """In-memory ControlPlane recording every call.

    Attributes:
        existing: Names returned by list_services()
        states: Per-service list of (state, description) returned by
                successive get_service() calls; the last entry repeats
        failing_commands: cf verbs whose run_command() returns an error
    """

    def __init__(self, existing=None, states=None, failing_commands=None, output=''):
        self.existing = list(existing or [])
        self.states = dict(states or {})
        self.failing_commands = set(failing_commands or [])
        self.output = output
        self.commands: list[tuple] = []
        self.get_calls: list[str] = []
        self.list_calls = 0

    def list_services(self) -> list[RemoteService]:
        self.list_calls += 1
        return [RemoteService(name=n, guid=f'guid-{n}') for n in self.existing]

    def get_service(self, name: str) -> RemoteService:
        self.get_calls.append(name)
        sequence = self.states.get(name, [('succeeded', 'create succeeded')])
        index = min(self.get_calls.count(name) - 1, len(sequence) - 1)
        state, description = sequence[index]
        return RemoteService(
            name=name,
            guid=f'guid-{name}',
            last_operation=LastOperation(type='create', state=state, description=description),
        )

    def run_command(self, *args: str) -> tuple[str, Optional[ControlPlaneError]]:
        self.commands.append(args)
        if args and args[0] in self.failing_commands:
            return 'FAILED', ControlPlaneError(f"cf {args[0]} failed (exit 1): boom")
        return self.output, None

    @property
    def create_calls(self) -> list[tuple]:
        return [c for c in self.commands if c and c[0] == 'create-service']


@pytest.fixture
def fake_control_plane():
    """Factory for FakeControlPlane instances."""
    return FakeControlPlane


@pytest.fixture
def manifest_file(tmp_path):
    """Write a services manifest and return its path."""
    def _write(content: str, name: str = 'services-manifest.yml') -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path
    return _write


@pytest.fixture
def cf_home(tmp_path):
    """CF_HOME with a logged-in, space-targeted .cf/config.json."""
    home = tmp_path / 'cf-home'
    (home / '.cf').mkdir(parents=True)
    (home / '.cf' / 'config.json').write_text("""{
  "ConfigVersion": 3,
  "Target": "https://api.sys.example.com/",
  "SSLDisabled": false,
  "AccessToken": "bearer stale",
  "OrganizationFields": {"GUID": "org-guid", "Name": "dev-org"},
  "SpaceFields": {"GUID": "space-guid", "Name": "dev"}
}
""")
    return home
