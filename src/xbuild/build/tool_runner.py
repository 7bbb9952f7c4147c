"""Toolchain Process Runner.

Executes exactly one external tool per build action and turns failures into
ToolInvocationError.

Design:
    - Wraps subprocess.run with Windows-safe creation flags and stdin detached
    - Captures stderr so a failing compiler's diagnostics reach the error
    - Optionally redirects stdout into a file (disassembly listings)
    - No retries and no timeout: a failure aborts the build
"""

import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from ..errors import ToolInvocationError
from ..output import log_detail

logger = logging.getLogger(__name__)


def _creation_flags() -> int:
    """CREATE_NO_WINDOW on Windows, 0 elsewhere."""
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


class CommandRunner(Protocol):
    """Anything that can execute a toolchain command for a target."""

    def run(self, command: Sequence[str], target: str, stdout_path: Optional[Path] = None) -> None: ...

    def capture(self, command: Sequence[str], target: str) -> str: ...


class ToolRunner:
    """Runs toolchain commands with subprocess."""

    def __init__(self, cwd: Optional[Path] = None, verbose: bool = False):
        """
        Args:
            cwd: Working directory for every command (defaults to the current one)
            verbose: Echo each command line
        """
        self.cwd = cwd
        self.verbose = verbose

    def run(self, command: Sequence[str], target: str, stdout_path: Optional[Path] = None) -> None:
        """Run ``command`` to produce ``target``.

        Args:
            command: Executable and arguments
            target: Artifact being built (for error messages)
            stdout_path: If given, stdout is written to this file

        Raises:
            ToolInvocationError: If the tool is missing or exits non-zero
        """
        cmd = [str(part) for part in command]
        logger.debug(f"Running: {' '.join(cmd)}")
        if self.verbose:
            log_detail(" ".join(cmd), indent=8)

        kwargs: dict[str, Any] = {"stdin": subprocess.DEVNULL, "cwd": self.cwd}
        flags = _creation_flags()
        if flags:
            kwargs["creationflags"] = flags

        try:
            if stdout_path is not None:
                stdout_path.parent.mkdir(parents=True, exist_ok=True)
                with open(stdout_path, "wb") as out:
                    result = subprocess.run(cmd, stdout=out, stderr=subprocess.PIPE, **kwargs)
            else:
                result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, **kwargs)
        except (FileNotFoundError, PermissionError) as e:
            raise ToolInvocationError(cmd, None, str(e), target=target)

        stderr = result.stderr.decode("utf-8", errors="replace") if result.stderr else ""
        if result.returncode != 0:
            if stdout_path is not None:
                stdout_path.unlink(missing_ok=True)
            raise ToolInvocationError(cmd, result.returncode, stderr, target=target)

        if stderr:
            # Tool diagnostics such as compiler warnings
            logger.warning(f"{cmd[0]} ({target}): {stderr.rstrip()}")

    def capture(self, command: Sequence[str], target: str) -> str:
        """Run ``command`` and return its stdout as text.

        Raises:
            ToolInvocationError: If the tool is missing or exits non-zero
        """
        cmd = [str(part) for part in command]
        logger.debug(f"Capturing: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                cwd=self.cwd,
                creationflags=_creation_flags(),
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolInvocationError(cmd, None, str(e), target=target)
        if result.returncode != 0:
            raise ToolInvocationError(cmd, result.returncode, result.stderr, target=target)
        return result.stdout
