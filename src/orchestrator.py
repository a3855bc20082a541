"""Service orchestrator for services manifests.

Walks the manifest in file order and, for each service:
1. Skips it when a service instance with the same name already exists
2. Runs `cf create-service` with the broker, plan and parameters
3. Polls the instance's last operation until it succeeds or fails

Failures are per-service: they are reported and the next service is
processed. Nothing is updated when an existing service differs from the
manifest.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import IO, Optional

from common import format_command
from config import PollSettings
from control_plane import (
    STATE_FAILED,
    STATE_SUCCEEDED,
    ControlPlane,
    ControlPlaneError,
    RemoteService,
)
from manifest import Manifest, ServiceSpec
from progress import ProgressSpinner

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base exception for per-service failures."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message)


class ServiceCreationError(ServiceError):
    """`cf create-service` itself failed."""


class ServiceFailedError(ServiceError):
    """Provisioning reached the failed state."""

    def __init__(self, name: str, description: str, state: str):
        self.description = description
        self.state = state
        super().__init__(name, f"error {description} [status: {state}]")


class ServicePollTimeout(ServiceError):
    """Provisioning did not reach a terminal state in time."""


@dataclass
class ServiceResult:
    """Per-service outcome.

    Attributes:
        name: Service name (matches ServiceSpec.name)
        status: pending, exists, created, failed
        message: Error message if failed
        started_at: Timestamp when processing started
        completed_at: Timestamp when processing finished
    """
    name: str
    status: str = 'pending'
    message: str = ''
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def start(self) -> None:
        self.started_at = time.time()

    def complete(self, status: str) -> None:
        self.status = status
        self.completed_at = time.time()

    def fail(self, message: str) -> None:
        self.status = 'failed'
        self.message = message
        self.completed_at = time.time()

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is not None and self.completed_at is not None:
            return self.completed_at - self.started_at
        return None


def summarize(results: list[ServiceResult]) -> str:
    """One-line summary of a batch."""
    counts = {status: 0 for status in ('created', 'exists', 'failed')}
    for result in results:
        if result.status in counts:
            counts[result.status] += 1
    return (
        f"Services: {counts['created']} created, "
        f"{counts['exists']} existing, {counts['failed']} failed"
    )


@dataclass
class ServiceOrchestrator:
    """Creates the services of a manifest through a control plane.

    Attributes:
        control_plane: Platform access (list/get services, run cf commands)
        poll: Timing for provisioning status polls
        stream: Where the progress spinner is drawn
    """
    control_plane: ControlPlane
    poll: PollSettings = field(default_factory=PollSettings)
    stream: Optional[IO[str]] = None

    def create_services(self, manifest: Manifest) -> list[ServiceResult]:
        """Create every service in the manifest, best effort."""
        results = []
        for spec in manifest.services:
            result = ServiceResult(spec.name)
            result.start()
            try:
                result.complete(self.create_service(spec))
            except (ServiceError, ControlPlaneError) as e:
                result.fail(str(e))
                print(f"Create Service Error: {e}")
                logger.debug(f"Service '{spec.name}' failed", exc_info=True)
            results.append(result)

        if results:
            print(summarize(results))
        return results

    def create_service(self, spec: ServiceSpec) -> str:
        """Create one service and wait for provisioning.

        Returns:
            'exists' if a service with that name was already there,
            'created' once provisioning succeeded

        Raises:
            ServiceCreationError: If `cf create-service` fails
            ServiceFailedError: If provisioning ends in the failed state
            ServicePollTimeout: If provisioning does not finish in time
            ControlPlaneError: If the platform cannot be queried
        """
        existing = self.control_plane.list_services()
        if any(svc.name == spec.name for svc in existing):
            print(f"{spec.name} already exists.")
            return 'exists'

        print(f"{spec.name} will now be created.")
        _, error = self._run(*spec.create_args())
        if error is not None:
            raise ServiceCreationError(spec.name, str(error))

        self.wait_for_service(spec.name)
        return 'created'

    def wait_for_service(self, name: str) -> RemoteService:
        """Poll a service until its last operation succeeds.

        The delay between polls starts at poll.interval and grows by
        poll.backoff up to poll.max_interval.
        """
        spinner = ProgressSpinner(self.stream)
        start = time.time()
        interval = self.poll.interval
        attempts = 0

        try:
            while True:
                attempts += 1
                service = self.control_plane.get_service(name)
                operation = service.last_operation
                spinner.next(operation.description or operation.state)

                if operation.state == STATE_SUCCEEDED:
                    logger.debug(f"Service '{name}' ready after {attempts} poll(s)")
                    return service
                if operation.state == STATE_FAILED:
                    raise ServiceFailedError(name, operation.description, operation.state)

                elapsed = time.time() - start
                if elapsed + interval > self.poll.timeout:
                    raise ServicePollTimeout(
                        name,
                        f"timed out after {elapsed:.0f}s waiting for {name} "
                        f"[status: {operation.state or 'unknown'}]",
                    )
                time.sleep(interval)
                interval = min(interval * self.poll.backoff, self.poll.max_interval)
        finally:
            spinner.finish()

    def _run(self, *args: str):
        print(f"Now Running CLI Command: {format_command(list(args))}")
        return self.control_plane.run_command(*args)
