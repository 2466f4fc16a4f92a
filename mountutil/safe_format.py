"""Formatting a disk when it is blank, checking it, and mounting it."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import timedelta
from typing import Any

from mountutil.args import sanitized_options_for_logging
from mountutil.diskformat import get_disk_format
from mountutil.errors import MountError, MountErrorType
from mountutil.executor import ExecutableNotFoundError, Executor, ExitError

logger = logging.getLogger(__name__)

# 'fsck' found errors and corrected them.
FSCK_ERRORS_CORRECTED = 1
# 'fsck' found errors but exited without correcting them.
FSCK_ERRORS_UNCORRECTED = 4

DEFAULT_FSTYPE = "ext4"


def _seconds(timeout: float | timedelta | None) -> float | None:
    if timeout is None:
        return None
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class SafeFormatAndMount:
    """Formats a disk only when it holds no filesystem, then mounts it.

    ``mounter`` is any object with a ``mount_sensitive`` method, such as a
    Mounter. When ``max_concurrent_format`` is positive, at most that many
    mkfs commands run at once; a slot is given back when the command ends or
    after ``format_timeout`` seconds, whichever comes first.
    """

    def __init__(
        self,
        mounter: Any,
        executor: Executor | None = None,
        max_concurrent_format: int = 0,
        format_timeout: float | timedelta | None = None,
    ) -> None:
        self.mounter = mounter
        self.executor = executor if executor is not None else Executor()
        self.format_timeout = _seconds(format_timeout)
        self._format_sem = (
            threading.Semaphore(max_concurrent_format) if max_concurrent_format > 0 else None
        )

    def format_and_mount(
        self, source: str, target: str, fstype: str, options: Sequence[str] | None = None
    ) -> None:
        """Format ``source`` if it is blank and mount it on ``target``."""
        self.format_and_mount_sensitive(source, target, fstype, options, None, None)

    def format_and_mount_sensitive(
        self,
        source: str,
        target: str,
        fstype: str,
        options: Sequence[str] | None = None,
        sensitive_options: Sequence[str] | None = None,
        format_options: Sequence[str] | None = None,
    ) -> None:
        """Like format_and_mount() but keeps ``sensitive_options`` out of logs.

        Raises MountError, tagged with the kind of failure.
        """
        options = list(options or [])
        sensitive_options = list(sensitive_options or [])
        format_options = list(format_options or [])

        read_only = "ro" in options or "ro" in sensitive_options
        options.append("defaults")
        mount_error_type = MountErrorType.UNKNOWN_MOUNT_ERROR

        try:
            existing_format = self.get_disk_format(source)
        except Exception as exc:
            raise MountError(
                MountErrorType.GET_DISK_FORMAT_FAILED,
                f"failed to get disk format of disk {source}: {exc}",
            ) from exc

        fstype = fstype or DEFAULT_FSTYPE

        if not existing_format:
            if read_only:
                raise MountError(
                    MountErrorType.UNFORMATTED_READ_ONLY,
                    f"cannot mount unformatted disk {source} as we are manipulating it "
                    "in read-only mode",
                )
            if fstype in ("ext4", "ext3"):
                # Force, and reserve no blocks for the super-user.
                args = ["-F", "-m0", source]
            elif fstype == "xfs":
                args = ["-f", source]
            else:
                args = [source]
            args = format_options + args

            logger.info(
                "Disk %r appears to be unformatted, attempting to format as type: %r "
                "with options: %s",
                source,
                fstype,
                args,
            )
            try:
                self.format(fstype, args)
            except (ExitError, ExecutableNotFoundError, OSError) as exc:
                options_log = sanitized_options_for_logging(options, sensitive_options)
                output = getattr(exc, "output", "")
                detailed = (
                    f'format of disk "{source}" failed: type:("{fstype}") '
                    f'target:("{target}") options:("{options_log}") '
                    f"errcode:({exc}) output:({output}) "
                )
                logger.error("%s", detailed)
                raise MountError(MountErrorType.FORMAT_FAILED, detailed) from exc
            logger.info("Disk successfully formatted (mkfs): %s - %s %s", fstype, source, target)
        else:
            if fstype != existing_format:
                mount_error_type = MountErrorType.FILESYSTEM_MISMATCH
                logger.warning(
                    "Configured to mount disk %s as %s but current format is %s, "
                    "things might break",
                    source,
                    fstype,
                    existing_format,
                )
            if not read_only:
                # Repair what can be repaired, only for volumes mounted read-write.
                self.check_and_repair_filesystem(source)

        logger.debug("Attempting to mount disk %s in %s format at %s", source, fstype, target)
        try:
            self.mounter.mount_sensitive(source, target, fstype, options, sensitive_options)
        except Exception as exc:
            raise MountError(mount_error_type, str(exc)) from exc

    def get_disk_format(self, disk: str) -> str:
        """Return the filesystem on ``disk`` as reported by blkid, or ""."""
        return get_disk_format(self.executor, disk)

    def check_and_repair_filesystem(self, source: str) -> None:
        """Run ``fsck -a`` on ``source``; raise MountError on uncorrected errors."""
        logger.debug("Checking for issues with fsck on disk: %s", source)
        try:
            self.executor.run("fsck", ["-a", source])
        except ExecutableNotFoundError:
            logger.warning("'fsck' not found on system; continuing mount without running 'fsck'.")
        except ExitError as exc:
            if exc.exit_status == FSCK_ERRORS_CORRECTED:
                logger.info("Device %s has errors which were corrected by fsck.", source)
            elif exc.exit_status == FSCK_ERRORS_UNCORRECTED:
                raise MountError(
                    MountErrorType.HAS_FILESYSTEM_ERRORS,
                    f"'fsck' found errors on device {source} but could not correct them: "
                    f"{exc.output}",
                ) from exc
            elif exc.exit_status > FSCK_ERRORS_UNCORRECTED:
                logger.info("`fsck` error %s", exc.output)
            else:
                logger.warning(
                    "fsck on device %s failed with error %s, output: %s", source, exc, exc.output
                )
        except OSError as exc:
            logger.warning("fsck on device %s failed with error %s", source, exc)

    def format(self, fstype: str, args: Sequence[str] | None = None) -> str:
        """Run ``mkfs.<fstype>`` with ``args`` and return its output."""
        command = f"mkfs.{fstype}"
        args = list(args or [])
        if self._format_sem is None:
            return self.executor.run(command, args)

        done = threading.Event()
        self._format_sem.acquire()
        threading.Thread(target=self._release_slot, args=(done,), daemon=True).start()
        try:
            return self.executor.run(command, args)
        finally:
            done.set()

    def _release_slot(self, done: threading.Event) -> None:
        assert self._format_sem is not None
        try:
            done.wait(self.format_timeout)
        finally:
            self._format_sem.release()