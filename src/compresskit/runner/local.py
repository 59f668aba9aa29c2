"""
Local subprocess-based runner.

Uses ``subprocess.run`` with an argv list and ``shell=False``; output is
captured, decoded and truncated.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from compresskit._types import ExecutionRequest, ExecutionResult
from compresskit.config import DEFAULT_MAX_OUTPUT_BYTES
from compresskit.runner._base import ProcessRunner

logger = logging.getLogger(__name__)


class LocalRunner(ProcessRunner):
    """
    Runs programs on the host.

    Example:
        >>> runner = LocalRunner()
        >>> result = runner.run(ExecutionRequest("gs", ("--version",)), timeout=10)
        >>> result.exit_code
        0
    """

    def __init__(
        self,
        *,
        env: dict[str, str] | None = None,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        """
        Initialize a local runner.

        Args:
            env: Environment for child processes (inherits the parent's if None).
            max_output_bytes: Maximum characters kept from stdout/stderr each.
        """
        self._env = env
        self._max_output_bytes = max_output_bytes

    def run(
        self,
        request: ExecutionRequest,
        *,
        timeout: float,
        cwd: Path | str | None = None,
    ) -> ExecutionResult:
        logger.debug(f"Spawning {request.program} with {len(request.args)} argument(s)")
        try:
            proc = subprocess.run(
                request.argv,
                shell=False,
                cwd=str(cwd) if cwd else None,
                env=self._env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            # subprocess.run has already killed and reaped the child
            stdout, stdout_truncated = self._decode_and_truncate(exc.stdout or b"")
            return ExecutionResult(
                program=request.program,
                args=request.args,
                exit_code=-1,
                stdout=stdout,
                stderr=f"Command timed out after {timeout}s",
                truncated=stdout_truncated,
                timed_out=True,
            )

        stdout, stdout_truncated = self._decode_and_truncate(proc.stdout)
        stderr, stderr_truncated = self._decode_and_truncate(proc.stderr)

        return ExecutionResult(
            program=request.program,
            args=request.args,
            exit_code=proc.returncode,
            stdout=stdout,
            stderr=stderr,
            truncated=stdout_truncated or stderr_truncated,
        )

    def _decode_and_truncate(self, data: bytes) -> tuple[str, bool]:
        """Decode bytes and truncate if too large."""
        text = data.decode("utf-8", errors="replace")
        if len(text) > self._max_output_bytes:
            truncated_count = len(text) - self._max_output_bytes
            text = text[: self._max_output_bytes]
            text += f"\n\n[Truncated: {truncated_count} characters removed]"
            return text, True
        return text, False
