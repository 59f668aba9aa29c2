"""
Abstract base class for process runners.

A runner is the only place a process is ever spawned. CommandGate validates
a request first and then hands the runner an argument vector; runners never
see a command string and never go through a shell.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from compresskit._types import ExecutionRequest, ExecutionResult


class ProcessRunner(ABC):
    """
    Abstract base for all process-spawning backends.

    Implementations must raise ``OSError`` when the program cannot be started
    and must report a non-zero exit through the result, not by raising.
    """

    @abstractmethod
    def run(
        self,
        request: ExecutionRequest,
        *,
        timeout: float,
        cwd: Path | str | None = None,
    ) -> ExecutionResult:
        """
        Spawn ``request.argv`` and wait for it to finish.

        Args:
            request: A validated program and argument vector.
            timeout: Maximum seconds to wait before killing the process.
            cwd: Working directory for the child.

        Returns:
            ExecutionResult with exit code and captured output.

        Raises:
            OSError: If the process could not be spawned.
        """
        ...
