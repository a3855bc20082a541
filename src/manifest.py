"""Services manifest loading and validation.

A services manifest lists the backing services to create before an
application is pushed:

    create-services:
    - name: my-db
      broker: p-mysql
      plan: 100mb
      parameters: '{"max_connections": 50}'

`parameters` is optional. A string is passed to `cf create-service -c`
verbatim; structured YAML is serialized to a JSON string first.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Optional, Union

import yaml

logger = logging.getLogger(__name__)

# Top-level key holding the list of services
SERVICES_KEY = 'create-services'

REQUIRED_FIELDS = ('name', 'broker', 'plan')


class ManifestError(Exception):
    """Base exception for services manifest errors."""


class ManifestNotFoundError(ManifestError):
    """Manifest file does not exist."""


class ManifestOpenError(ManifestError):
    """Manifest file exists but cannot be read."""


class ManifestParseError(ManifestError):
    """Manifest content is malformed or incomplete."""


@dataclass(frozen=True)
class ServiceSpec:
    """A service to create.

    Attributes:
        name: Service instance name requested from the platform
        broker: Service offering to provision from
        plan: Service plan (tier)
        parameters: JSON string for `cf create-service -c` ('' = none)
    """
    name: str
    broker: str
    plan: str
    parameters: str = ''

    @classmethod
    def from_dict(cls, data: dict) -> 'ServiceSpec':
        """Create ServiceSpec from dictionary."""
        return cls(
            name=data['name'],
            broker=data['broker'],
            plan=data['plan'],
            parameters=_parameters_to_json(data.get('parameters')),
        )

    def create_args(self) -> list[str]:
        """Arguments for `cf create-service`."""
        args = ['create-service', self.broker, self.plan, self.name]
        if self.parameters:
            args.extend(['-c', self.parameters])
        return args


@dataclass(frozen=True)
class Manifest:
    """Services manifest.

    Attributes:
        services: Services in file order
        source_path: Path where manifest was loaded from (for messages)
    """
    services: tuple[ServiceSpec, ...]
    source_path: Optional[Path] = None

    def __len__(self) -> int:
        return len(self.services)

    def __iter__(self):
        return iter(self.services)

    @classmethod
    def from_dict(cls, data: Any, source_path: Optional[Path] = None) -> 'Manifest':
        """Create Manifest from parsed YAML data.

        Raises:
            ManifestParseError: If the document structure is invalid
        """
        where = f" {source_path}" if source_path else ''
        if not isinstance(data, dict):
            raise ManifestParseError(f"Manifest{where} must be a YAML object (dict)")
        if SERVICES_KEY not in data:
            raise ManifestParseError(f"Manifest{where} missing required field: {SERVICES_KEY}")

        entries = data[SERVICES_KEY]
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ManifestParseError(f"Manifest{where} field '{SERVICES_KEY}' must be a list")

        services = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ManifestParseError(f"Service {i} must be a YAML object (dict)")
            fields = dict(entry)
            for key in REQUIRED_FIELDS:
                value = entry.get(key)
                if value is None or value == '':
                    label = entry.get('name') or 'unnamed'
                    raise ManifestParseError(f"Service {i} ({label}) missing required field: {key}")
                if isinstance(value, (dict, list)):
                    raise ManifestParseError(
                        f"Service {i} field '{key}' must be a scalar, got {type(value).__name__}"
                    )
                # plan: 100 and name: 2024 are plain text to cf
                fields[key] = str(value)
            try:
                services.append(ServiceSpec.from_dict(fields))
            except (TypeError, ValueError) as e:
                raise ManifestParseError(
                    f"Service {i} ({entry['name']}) has invalid parameters: {e}"
                ) from e

        return cls(services=tuple(services), source_path=source_path)


def _parameters_to_json(value: Any) -> str:
    """Flatten manifest parameters to the JSON string cf expects."""
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    return json.dumps(value)


def parse_manifest(stream: Union[IO[str], str], source_path: Optional[Path] = None) -> Manifest:
    """Parse a services manifest from a YAML stream or string.

    Raises:
        ManifestParseError: If the YAML is malformed or fields are missing
    """
    try:
        data = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        where = f" in {source_path}" if source_path else ''
        raise ManifestParseError(f"Invalid YAML{where}: {e}") from e
    return Manifest.from_dict(data, source_path=source_path)


def load_manifest(path: Path) -> Manifest:
    """Load a services manifest file.

    Raises:
        ManifestNotFoundError: If the file does not exist
        ManifestOpenError: If the file cannot be opened or read
        ManifestParseError: If the content is invalid
    """
    path = Path(path)
    if not path.exists():
        raise ManifestNotFoundError(f"The file {path} was not found.")

    try:
        with open(path, encoding='utf-8') as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestOpenError(f"Unable to open {path}.") from e

    manifest = parse_manifest(content, source_path=path)
    logger.debug(f"Loaded {len(manifest)} service(s) from {path}")
    return manifest
