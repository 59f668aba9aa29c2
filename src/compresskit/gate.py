"""
CommandGate: the only path from this package to an external process.

Validation always completes before execution starts. A program outside the
policy, or arguments outside its schema, never reach the runner.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from compresskit._types import ExecutionRequest, ExecutionResult, Severity
from compresskit.config import CONFIG, SecurityConfig
from compresskit.errors import CommandError, CommandErrorKind, CompressKitError
from compresskit.runner.local import LocalRunner
from compresskit.security.policy import CommandPolicy
from compresskit.security.validators import safe_repr

if TYPE_CHECKING:
    from compresskit._types import IncidentSink
    from compresskit.runner._base import ProcessRunner

logger = logging.getLogger(__name__)

_FORBIDDEN_ARG_CHARS = ("\0", "\n", "\r")


class CommandGate:
    """
    Allowlisted, argv-only execution of external programs.

    Example:
        >>> gate = CommandGate(CommandPolicy.default())
        >>> gate.execute("rm", ["-rf", "/"])
        Traceback (most recent call last):
        ...
        compresskit.errors.CommandError: Command error (not_allowed): ...
    """

    def __init__(
        self,
        policy: CommandPolicy,
        *,
        runner: ProcessRunner | None = None,
        reporter: IncidentSink | None = None,
        timeout: float | None = None,
        config: SecurityConfig = CONFIG,
    ) -> None:
        """
        Args:
            policy: The allowlist and argument schemas to enforce.
            runner: Spawning backend. Defaults to LocalRunner.
            reporter: Receives HIGH-severity incidents for refused commands.
            timeout: Seconds before the child is killed. Defaults to the config value.
            config: Supplies the default timeout and output cap.
        """
        self._policy = policy
        self._runner = runner or LocalRunner(max_output_bytes=config.max_output_bytes)
        self._reporter = reporter
        self._timeout = timeout if timeout is not None else config.command_timeout

        flagged = sorted(name for name, spec in policy.items() if spec.catch_all)
        if flagged:
            logger.warning(f"Command policy has catch-all argument schemas for: {', '.join(flagged)}")

    @property
    def policy(self) -> CommandPolicy:
        return self._policy

    def validate(self, program: str, args: Sequence[str]) -> ExecutionRequest:
        """
        Check ``program`` against the allowlist and ``args`` against its schema.

        Raises:
            CommandError: NOT_ALLOWED or ARGUMENT_REJECTED.
        """
        if isinstance(args, str):
            raise TypeError("args must be a sequence of strings, not a single string")
        arguments = tuple(args)
        if not isinstance(program, str) or not all(isinstance(arg, str) for arg in arguments):
            raise TypeError("program and args must be strings")

        spec = self._policy.get(program)
        if spec is None:
            raise self._reject(
                CommandErrorKind.NOT_ALLOWED,
                f"command {safe_repr(program)} is not in the allowed commands list",
                program,
                arguments,
            )

        bad_char = any(ch in arg for arg in arguments for ch in _FORBIDDEN_ARG_CHARS)
        if bad_char or not spec.accepts(arguments):
            raise self._reject(
                CommandErrorKind.ARGUMENT_REJECTED,
                f"arguments for {program} do not match the allowed pattern",
                program,
                arguments,
            )

        if spec.catch_all:
            logger.warning(f"{program} authorized by a catch-all argument schema")
        return ExecutionRequest(program, arguments)

    def execute(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        check: bool = False,
        cwd: Path | str | None = None,
    ) -> ExecutionResult:
        """
        Validate, then run ``program`` with ``args`` and wait for it.

        Args:
            program: Exact allowlisted program name.
            args: Argument vector; passed to the process unchanged.
            check: Raise on a non-zero exit instead of returning the result.
            cwd: Working directory for the child.

        Returns:
            ExecutionResult with exit code and captured output.

        Raises:
            CommandError: NOT_ALLOWED, ARGUMENT_REJECTED, SPAWN_FAILED, or
                NON_ZERO_EXIT when ``check`` is set.
        """
        request = self.validate(program, args)
        try:
            result = self._runner.run(request, timeout=self._timeout, cwd=cwd)
        except OSError as exc:
            logger.error(f"Failed to spawn {program}: {exc}")
            raise CommandError(
                CommandErrorKind.SPAWN_FAILED, f"failed to start {program}: {exc}", program=program
            ) from exc

        if not result.success:
            logger.warning(
                f"{program} exited with code {result.exit_code}"
                + (" (timed out)" if result.timed_out else "")
            )
        if check:
            result.raise_for_status()
        return result

    def _reject(
        self, kind: CommandErrorKind, message: str, program: str, args: Sequence[str]
    ) -> CommandError:
        logger.warning(f"Security violation: {message}")
        if self._reporter is not None:
            rendered = safe_repr(" ".join([program, *args]))
            try:
                self._reporter.report_incident(
                    kind.value,
                    Severity.HIGH,
                    f"command={rendered}",
                    context="CommandGate.execute",
                )
            except CompressKitError:
                logger.exception("Failed to record command incident")
        return CommandError(kind, message, program=program)


__all__ = [
    "CommandGate",
]
