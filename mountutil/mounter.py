"""Mounting, unmounting and inspecting mount points with the system tools."""

from __future__ import annotations

import errno
import logging
import os
import posixpath
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import Any

from mountutil.args import (
    add_systemd_scope_sensitive,
    make_bind_opts_sensitive,
    make_mount_args_sensitive_with_mount_flags,
)
from mountutil.executor import ExecutableNotFoundError, Executor, ExitError
from mountutil.procmounts import MountPoint, list_proc_mounts, search_mount_points

logger = logging.getLogger(__name__)

PROC_MOUNTS_PATH = "/proc/mounts"
PROC_MOUNT_INFO_PATH = "/proc/self/mountinfo"
DEFAULT_MOUNT_COMMAND = "mount"

# Raised by some process runners when the child finished before it was waited on.
ERR_NO_CHILD_PROCESSES = "wait: no child processes"
# Printed by some umount implementations when the path is not a mount point.
ERR_NOT_MOUNTED = "not mounted"

MS_RDONLY = 0x1
MS_NOSUID = 0x2
MS_NODEV = 0x4
MS_NOEXEC = 0x8
MS_NOATIME = 0x400
MS_NODIRATIME = 0x800
MS_RELATIME = 0x200000

_FLAG_OPTIONS = (
    (MS_RDONLY, "ro"),
    (MS_NODEV, "nodev"),
    (MS_NOEXEC, "noexec"),
    (MS_NOSUID, "nosuid"),
    (MS_NOATIME, "noatime"),
    (MS_RELATIME, "relatime"),
    (MS_NODIRATIME, "nodiratime"),
)

# Filesystems that are mounted through the configured mounter binary.
_FS_TYPES_NEED_MOUNTER = frozenset({"nfs", "glusterfs", "ceph", "cifs"})

_CORRUPTED_MOUNT_ERRNOS = frozenset(
    {errno.ESTALE, errno.ENOTCONN, errno.EIO, errno.EACCES, errno.EHOSTDOWN}
)


def get_bind_mount_options(
    path: str, statfs: Callable[[str], Any] = os.statvfs
) -> list[str]:
    """Map the mount flags of the filesystem holding ``path`` to mount options.

    ``statfs`` returns an object with an ``f_flag`` attribute, like os.statvfs.
    """
    try:
        result = statfs(path)
    except OSError as exc:
        raise OSError(exc.errno, f"statfs {path}: {exc.strerror or exc}") from exc
    flags = int(result.f_flag)
    return [option for flag, option in _FLAG_OPTIONS if flags & flag == flag]


def detect_systemd() -> bool:
    """Return True when ``systemd-run --scope`` works on this host."""
    if shutil.which("systemd-run") is None:
        logger.info("Detected OS without systemd")
        return False
    try:
        Executor().run(
            "systemd-run", ["--description=Kubernetes systemd probe", "--scope", "true"]
        )
    except (ExitError, ExecutableNotFoundError, OSError) as exc:
        logger.info("Cannot run systemd-run, assuming non-systemd OS")
        logger.debug("systemd-run output: %s, failed with: %s", getattr(exc, "output", ""), exc)
        return False
    logger.info("Detected OS with systemd")
    return True


def detect_safe_not_mounted_behavior(executor: Executor | None = None) -> bool:
    """Return True when umount reports "not mounted" for a path that is not mounted."""
    executor = executor or Executor()
    try:
        path = tempfile.mkdtemp(prefix="kubelet-detect-safe-umount")
    except OSError as exc:
        logger.debug("Cannot create temp dir to detect safe 'not mounted' behavior: %s", exc)
        return False
    try:
        try:
            executor.run("umount", [path])
        except (ExitError, ExecutableNotFoundError) as exc:
            output = getattr(exc, "output", "")
            if ERR_NOT_MOUNTED in output:
                logger.debug("Detected umount with safe 'not mounted' behavior")
                return True
            logger.debug("'umount %s' failed with: %s, output: %s", path, exc, output)
    finally:
        shutil.rmtree(path, ignore_errors=True)
    logger.debug("Detected umount with unsafe 'not mounted' behavior")
    return False


def check_umount_error(
    target: str,
    output: str | bytes | None,
    error: BaseException,
    with_safe_not_mounted_behavior: bool,
) -> None:
    """Decide whether a failed umount is really a failure; raise RuntimeError if so."""
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    output = output or ""
    if str(error) == ERR_NO_CHILD_PROCESSES:
        return None
    if with_safe_not_mounted_behavior and ERR_NOT_MOUNTED in output:
        logger.debug("ignoring 'not mounted' error for %s", target)
        return None
    raise RuntimeError(
        f"unmount failed: {error}\nUnmounting arguments: {target}\nOutput: {output}"
    ) from error


def _parent_dir(file: str) -> str:
    return posixpath.dirname(file.rstrip("/")) or "."


def _is_corrupted_mount(exc: OSError) -> bool:
    return exc.errno in _CORRUPTED_MOUNT_ERRNOS


class Mounter:
    """Mounts and unmounts filesystems with mount(8) and umount(8)."""

    def __init__(
        self,
        mounter_path: str = "",
        try_systemd: bool = True,
        with_safe_not_mounted_behavior: bool = False,
    ) -> None:
        self.mounter_path = mounter_path
        self.try_systemd = try_systemd
        self.with_safe_not_mounted_behavior = with_safe_not_mounted_behavior
        self.with_systemd: bool | None = None
        self.executor = Executor()
        self.proc_mounts_path = PROC_MOUNTS_PATH
        self.proc_mount_info_path = PROC_MOUNT_INFO_PATH

    def has_systemd(self) -> bool:
        """Return whether systemd-run is used, detecting it once if needed."""
        if not self.try_systemd:
            self.with_systemd = False
        if self.with_systemd is None:
            self.with_systemd = detect_systemd()
        return self.with_systemd

    def mount(
        self, source: str, target: str, fstype: str, options: Sequence[str] | None = None
    ) -> None:
        """Mount ``source`` on ``target``; empty source or fstype are left out."""
        self.mount_sensitive(source, target, fstype, options, None)

    def mount_sensitive(
        self,
        source: str,
        target: str,
        fstype: str,
        options: Sequence[str] | None = None,
        sensitive_options: Sequence[str] | None = None,
    ) -> None:
        """Mount like mount() but never log ``sensitive_options``."""
        self._mount(source, target, fstype, options, sensitive_options, None, self.try_systemd)

    def mount_sensitive_without_systemd(
        self,
        source: str,
        target: str,
        fstype: str,
        options: Sequence[str] | None = None,
        sensitive_options: Sequence[str] | None = None,
    ) -> None:
        """Mount like mount_sensitive() without going through systemd-run."""
        self.mount_sensitive_without_systemd_with_mount_flags(
            source, target, fstype, options, sensitive_options, None
        )

    def mount_sensitive_without_systemd_with_mount_flags(
        self,
        source: str,
        target: str,
        fstype: str,
        options: Sequence[str] | None = None,
        sensitive_options: Sequence[str] | None = None,
        mount_flags: Sequence[str] | None = None,
    ) -> None:
        """Mount without systemd-run, passing extra flags to mount(8)."""
        self._mount(source, target, fstype, options, sensitive_options, mount_flags, False)

    def _mount(
        self,
        source: str,
        target: str,
        fstype: str,
        options: Sequence[str] | None,
        sensitive_options: Sequence[str] | None,
        mount_flags: Sequence[str] | None,
        systemd_mount_required: bool,
    ) -> None:
        bind = make_bind_opts_sensitive(options, sensitive_options)
        if bind.bind:
            self._bind_mount_sensitive(
                "",
                DEFAULT_MOUNT_COMMAND,
                source,
                target,
                fstype,
                bind.bind_opts,
                bind.bind_remount_opts,
                bind.bind_remount_opts_sensitive,
                mount_flags,
                systemd_mount_required,
            )
            return
        mounter_path = self.mounter_path if fstype in _FS_TYPES_NEED_MOUNTER else ""
        self._do_mount(
            mounter_path,
            DEFAULT_MOUNT_COMMAND,
            source,
            target,
            fstype,
            options,
            sensitive_options,
            mount_flags,
            systemd_mount_required,
        )

    def _bind_mount_sensitive(
        self,
        mounter_path: str,
        mount_cmd: str,
        source: str,
        target: str,
        fstype: str,
        bind_opts: list[str],
        bind_remount_opts: list[str],
        bind_remount_opts_sensitive: list[str],
        mount_flags: Sequence[str] | None,
        systemd_mount_required: bool,
    ) -> None:
        self._do_mount(
            mounter_path, mount_cmd, source, target, fstype, bind_opts,
            bind_remount_opts_sensitive, mount_flags, systemd_mount_required,
        )
        # Carry the source's restrictive flags over to the bind mount.
        fix_opts = get_bind_mount_options(source, os.statvfs)
        self._do_mount(
            mounter_path, mount_cmd, source, target, fstype, [*bind_remount_opts, *fix_opts],
            bind_remount_opts_sensitive, mount_flags, systemd_mount_required,
        )

    def _do_mount(
        self,
        mounter_path: str,
        mount_cmd: str,
        source: str,
        target: str,
        fstype: str,
        options: Sequence[str] | None,
        sensitive_options: Sequence[str] | None,
        mount_flags: Sequence[str] | None,
        systemd_mount_required: bool,
    ) -> None:
        mount_args, log_str = make_mount_args_sensitive_with_mount_flags(
            source, target, fstype, options, sensitive_options, mount_flags
        )
        if mounter_path:
            mount_args = [mount_cmd, *mount_args]
            log_str = f"{mount_cmd} {log_str}"
            mount_cmd = mounter_path

        if systemd_mount_required and self.has_systemd():
            # A transient scope lets fuse daemons outlive the calling service.
            mount_cmd, mount_args, log_str = add_systemd_scope_sensitive(
                "systemd-run", target, mount_cmd, mount_args, log_str
            )

        logger.debug("Mounting cmd (%s) with arguments (%s)", mount_cmd, log_str)
        try:
            self.executor.run(mount_cmd, mount_args)
        except (ExitError, ExecutableNotFoundError) as exc:
            output = getattr(exc, "output", "")
            message = (
                f"mount failed: {exc}\nMounting command: {mount_cmd}\n"
                f"Mounting arguments: {log_str}\nOutput: {output}"
            )
            logger.error("%s", message)
            raise RuntimeError(message) from exc

    def _run_umount(self, args: list[str], target: str) -> None:
        try:
            self.executor.run("umount", args)
        except (ExitError, ExecutableNotFoundError) as exc:
            check_umount_error(
                target, getattr(exc, "output", ""), exc, self.with_safe_not_mounted_behavior
            )

    def unmount(self, target: str) -> None:
        """Unmount ``target``; "not mounted" is ignored when umount reports it safely."""
        logger.debug("Unmounting %s", target)
        self._run_umount([target], target)

    def unmount_with_force(self, target: str, timeout: float | timedelta) -> None:
        """Unmount ``target``, retrying with ``-f`` if umount exceeds ``timeout`` seconds."""
        seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
        logger.debug("Unmounting %s", target)
        try:
            completed = subprocess.run(
                ["umount", target],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.info("Timed out waiting for unmount of %s, trying with -f", target)
            self._run_umount(["-f", target], target)
            return
        except FileNotFoundError:
            check_umount_error(
                target, "", ExecutableNotFoundError("umount"), self.with_safe_not_mounted_behavior
            )
            return
        if completed.returncode != 0:
            output = completed.stdout.decode("utf-8", errors="replace")
            check_umount_error(
                target,
                output,
                ExitError(completed.returncode, output),
                self.with_safe_not_mounted_behavior,
            )

    def list(self) -> list[MountPoint]:
        """Return all mounted filesystems."""
        return list_proc_mounts(self.proc_mounts_path)

    def is_likely_not_mount_point(self, file: str) -> bool:
        """Return False when ``file`` is on a different device from its parent.

        Fast but not always right: bind mounts within one filesystem are missed.
        Raises OSError when ``file`` or its parent cannot be examined.
        """
        stat = os.stat(file)
        root_stat = os.stat(_parent_dir(file))
        return stat.st_dev == root_stat.st_dev

    def is_mount_point(self, file: str) -> bool:
        """Return whether ``file`` is a mount point, consulting the mount table if unsure."""
        try:
            stat = os.stat(file)
            parent = os.stat(_parent_dir(file))
        except FileNotFoundError:
            raise
        except PermissionError:
            # The quick check is not allowed (e.g. root_squash); use the mount table.
            pass
        else:
            if stat.st_dev != parent.st_dev:
                return True

        resolved = os.path.realpath(file, strict=True)
        return any(mount_point.path == resolved for mount_point in self.list())

    def can_safely_skip_mount_point_check(self) -> bool:
        """Return whether umount's own "not mounted" reply can be trusted."""
        return self.with_safe_not_mounted_behavior

    def get_mount_refs(self, pathname: str) -> list[str]:
        """Return other mount points that refer to the same source as ``pathname``."""
        try:
            os.stat(pathname)
        except FileNotFoundError:
            return []
        except OSError as exc:
            if _is_corrupted_mount(exc):
                logger.warning(
                    "GetMountRefs found corrupted mount at %s, treating as unmounted path",
                    pathname,
                )
                return []
            raise OSError(exc.errno, f"error checking path {pathname}: {exc}") from exc
        real_path = os.path.realpath(pathname, strict=True)
        return search_mount_points(real_path, self.proc_mount_info_path)


def new_mounter(mounter_path: str = "") -> Mounter:
    """Return a Mounter that uses systemd-run when available."""
    return Mounter(mounter_path, True, detect_safe_not_mounted_behavior())


def new_mounter_without_systemd(mounter_path: str = "") -> Mounter:
    """Return a Mounter that never uses systemd-run."""
    return Mounter(mounter_path, False, detect_safe_not_mounted_behavior())