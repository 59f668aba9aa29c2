"""
Secure file operations: private temporary files and atomic replacement.

Temporary files are created with O_EXCL and are owner read/write (0600)
before a single byte is written. Every live TempResource is registered and
released on explicit release, at interpreter exit, and on SIGINT/SIGTERM.
"""

from __future__ import annotations

import atexit
import errno
import logging
import os
import re
import signal
import stat
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from compresskit._types import PathPolicy, TempState, ValidatedPath
from compresskit.config import CONFIG, SecurityConfig
from compresskit.errors import StoreError, StoreErrorKind
from compresskit.security.paths import PathGuard

if TYPE_CHECKING:
    from types import FrameType

logger = logging.getLogger(__name__)

TEMP_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700

_PREFIX_RX = re.compile(r"^[A-Za-z0-9_.-]+$")


def _error_kind(exc: OSError) -> StoreErrorKind:
    if exc.errno in (errno.EACCES, errno.EPERM):
        return StoreErrorKind.PERMISSION_DENIED
    if exc.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
        return StoreErrorKind.DISK_FULL
    return StoreErrorKind.CREATE_FAILED


def _store_error(exc: OSError, action: str, path: str | os.PathLike[str]) -> StoreError:
    return StoreError(_error_kind(exc), f"{action}: {path} ({exc.strerror or exc})", path=str(path))


class TempResource:
    """
    A temporary file owned by the caller that created it.

    Use as a context manager, or call ``release()``; a resource is never
    silently left behind.
    """

    def __init__(self, path: ValidatedPath, policy: PathPolicy, store: SecureFileStore) -> None:
        self.path = path
        self.policy = policy
        self.mode = TEMP_FILE_MODE
        self.state = TempState.CREATED
        self._store = store

    def __repr__(self) -> str:
        return f"TempResource({str(self.path)!r}, {self.state.name})"

    def __fspath__(self) -> str:
        return str(self.path)

    @property
    def released(self) -> bool:
        return self.state is TempState.RELEASED

    def write(self, content: bytes) -> None:
        """Replace the file's content."""
        if self.released:
            raise StoreError(StoreErrorKind.CREATE_FAILED, "temp file already released", str(self.path))
        self.state = TempState.ACTIVE
        try:
            with open(self.path, "wb") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            raise _store_error(exc, "failed to write temporary file", self.path) from exc

    def read(self) -> bytes:
        with open(self.path, "rb") as fh:
            return fh.read()

    def release(self) -> None:
        self._store.release(self)

    def __enter__(self) -> TempResource:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()


class _CleanupRegistry:
    """Process-wide set of live temp resources, released on exit or signal."""

    def __init__(self) -> None:
        self._live: dict[str, TempResource] = {}
        # Re-entrant: the signal handler runs on the main thread, possibly inside add() or discard()
        self._lock = threading.RLock()
        self._installed = False
        self._previous: dict[int, object] = {}

    def add(self, resource: TempResource) -> None:
        self._install()
        with self._lock:
            self._live[str(resource.path)] = resource

    def discard(self, resource: TempResource) -> None:
        with self._lock:
            self._live.pop(str(resource.path), None)

    def live(self) -> list[TempResource]:
        with self._lock:
            return list(self._live.values())

    def release_all(self) -> None:
        for resource in self.live():
            try:
                resource.release()
            except StoreError:
                logger.exception(f"Failed to release {resource.path}")

    def _install(self) -> None:
        if self._installed:
            return
        self._installed = True
        atexit.register(self.release_all)
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread; temp cleanup relies on atexit only")
            return
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                self._previous[signum] = signal.getsignal(signum)
                signal.signal(signum, self._on_signal)
            except (ValueError, OSError) as exc:
                logger.debug(f"Cannot install cleanup handler for signal {signum}: {exc}")

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.warning(f"Signal {signum} received; releasing {len(self.live())} temp file(s)")
        self.release_all()
        previous = self._previous.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_IGN:
            return
        elif signum == signal.SIGINT:
            raise KeyboardInterrupt
        else:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)


_REGISTRY = _CleanupRegistry()


def live_resources() -> list[TempResource]:
    """Temp resources created in this process and not yet released."""
    return _REGISTRY.live()


class SecureFileStore:
    """
    Creates private temporary files and performs atomic writes.

    Example:
        >>> store = SecureFileStore()
        >>> with store.temp("compress") as tmp:
        ...     tmp.write(b"%PDF-1.4")
        >>> store.atomic_write("/tmp/out.txt", b"done")
    """

    def __init__(
        self,
        *,
        config: SecurityConfig = CONFIG,
        guard: PathGuard | None = None,
        policy: PathPolicy = PathPolicy.STRICT,
    ) -> None:
        """
        Args:
            config: Supplies the private temp directory.
            guard: Validates every location touched. Defaults to a guard
                built from ``config``.
            policy: Policy used when validating destinations.
        """
        self._config = config
        self._guard = guard or PathGuard(config=config)
        self._policy = policy

    @property
    def temp_dir(self) -> Path:
        return self._config.temp_dir

    def ensure_private_dir(self, directory: str | os.PathLike[str]) -> ValidatedPath:
        """
        Create ``directory`` owner-only (0700) if absent. Idempotent.

        Refuses a directory that is a symlink or is owned by another user.
        """
        safe = self._guard.validate_path(directory, self._policy)
        try:
            os.makedirs(safe, mode=PRIVATE_DIR_MODE, exist_ok=True)
            info = os.lstat(os.path.abspath(directory))
            if stat.S_ISLNK(info.st_mode) or not stat.S_ISDIR(info.st_mode):
                raise StoreError(
                    StoreErrorKind.PERMISSION_DENIED, f"not a private directory: {safe}", str(safe)
                )
            if hasattr(os, "geteuid") and info.st_uid != os.geteuid():
                raise StoreError(
                    StoreErrorKind.PERMISSION_DENIED, f"directory owned by another user: {safe}", str(safe)
                )
            if stat.S_IMODE(info.st_mode) != PRIVATE_DIR_MODE:
                os.chmod(safe, PRIVATE_DIR_MODE)
        except OSError as exc:
            raise _store_error(exc, "failed to prepare private directory", safe) from exc
        return safe

    def create_temp(
        self, prefix: str = "compresskit", directory: str | os.PathLike[str] | None = None
    ) -> TempResource:
        """
        Atomically create a uniquely named, owner-only temp file.

        Args:
            prefix: File name prefix (letters, digits, ``_``, ``.``, ``-``).
            directory: Create the file here instead of the private temp dir.

        Raises:
            StoreError: PERMISSION_DENIED, DISK_FULL or CREATE_FAILED.
        """
        if not prefix or not _PREFIX_RX.match(prefix):
            raise StoreError(StoreErrorKind.CREATE_FAILED, f"invalid temp file prefix: {prefix!r}")

        if directory is None:
            parent = self.ensure_private_dir(self._config.temp_dir)
        else:
            parent = self._guard.validate_path(directory, self._policy)

        try:
            fd, name = tempfile.mkstemp(prefix=f"{prefix}.", dir=parent)
        except OSError as exc:
            raise _store_error(exc, "failed to create temporary file", parent) from exc

        try:
            os.fchmod(fd, TEMP_FILE_MODE)
        except OSError as exc:
            os.close(fd)
            self._unlink_quietly(name)
            raise StoreError(
                StoreErrorKind.PERMISSION_DENIED,
                f"failed to set permissions on temporary file: {name} ({exc.strerror or exc})",
                name,
            ) from exc
        os.close(fd)

        resource = TempResource(ValidatedPath(name, self._policy), self._policy, self)
        _REGISTRY.add(resource)
        logger.debug(f"Created temp file {name}")
        return resource

    @contextmanager
    def temp(
        self, prefix: str = "compresskit", directory: str | os.PathLike[str] | None = None
    ) -> Iterator[TempResource]:
        """Create a temp file that is released however the block exits."""
        resource = self.create_temp(prefix, directory)
        try:
            yield resource
        finally:
            self.release(resource)

    def release(self, resource: TempResource) -> None:
        """Delete the backing file. Releasing twice is a no-op."""
        if resource.released:
            return
        try:
            os.unlink(resource.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise _store_error(exc, "failed to remove temporary file", resource.path) from exc
        resource.state = TempState.RELEASED
        _REGISTRY.discard(resource)
        logger.debug(f"Released temp file {resource.path}")

    def atomic_write(
        self,
        path: ValidatedPath | str | os.PathLike[str],
        content: bytes,
        perms: int = 0o600,
    ) -> ValidatedPath:
        """
        Replace ``path`` with ``content`` so readers see the old file or the
        new one, never a partial write.

        The temp file lives in the destination's directory so the final
        rename never crosses filesystems.

        Returns:
            The validated destination path.

        Raises:
            PathError: If the destination fails validation.
            StoreError: On any I/O failure; the temp file is removed.
        """
        if isinstance(path, ValidatedPath):
            destination = path
        else:
            destination = self._guard.validate_path(path, self._policy)

        parent = os.path.dirname(destination)
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as exc:
            raise _store_error(exc, "failed to create directory", parent) from exc
        if not os.access(parent, os.W_OK):
            raise StoreError(
                StoreErrorKind.PERMISSION_DENIED, f"no write permission to directory: {parent}", parent
            )

        stem = re.sub(r"[^A-Za-z0-9_.-]", "_", os.path.basename(destination))[:64]
        resource = self.create_temp(f".{stem}", parent)
        try:
            resource.write(content)
            os.chmod(resource.path, perms)
            os.replace(resource.path, destination)
        except OSError as exc:
            self.release(resource)
            raise _store_error(exc, "failed to replace destination", destination) from exc
        except BaseException:
            self.release(resource)
            raise

        resource.state = TempState.RELEASED
        _REGISTRY.discard(resource)
        logger.debug(f"Atomically wrote {len(content)} bytes to {destination}")
        return destination

    @staticmethod
    def _unlink_quietly(name: str) -> None:
        try:
            os.unlink(name)
        except FileNotFoundError:
            pass


__all__ = [
    "SecureFileStore",
    "TempResource",
    "live_resources",
]
