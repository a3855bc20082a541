"""Common utilities for running cf commands."""

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def format_command(cmd: list[str]) -> str:
    """Render a command line for display."""
    return ' '.join(shlex.quote(part) for part in cmd)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = 600,
    env: Optional[dict] = None,
    capture: bool = True
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    With capture=False the command writes straight to our stdout/stderr
    and both returned strings are empty.
    """
    logger.debug(f"Running: {format_command(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)
