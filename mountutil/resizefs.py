"""Growing ext3/ext4, xfs and btrfs filesystems to fill their device."""

from __future__ import annotations

import logging
import re

from mountutil.diskformat import get_disk_format
from mountutil.executor import ExecutableNotFoundError, Executor, ExitError

logger = logging.getLogger(__name__)

BLOCK_DEV = "blockdev"

_UINT_RE = re.compile(r"[0-9]+")
_UINT64_MAX = 2**64 - 1

_COMMAND_ERRORS = (ExitError, ExecutableNotFoundError, OSError)


def _parse_uint(text: str) -> int:
    if not _UINT_RE.fullmatch(text) or int(text) > _UINT64_MAX:
        raise ValueError(f"invalid unsigned integer: {text!r}")
    return int(text)


def parse_btrfs_info_output(
    cmd_output: str, block_size_key: str, total_bytes_key: str
) -> tuple[int, int]:
    """Pull the block size and total byte count out of ``btrfs dump-super`` output.

    Only lines of exactly two fields are considered; a key that is absent
    gives 0. Raises ValueError when a value is not an unsigned integer.
    """
    block_size = 0
    total_bytes = 0
    for line in cmd_output.split("\n"):
        tokens = line.split()
        if len(tokens) != 2:
            continue
        key, value = (token.strip().lower() for token in tokens)
        if key == block_size_key:
            try:
                block_size = _parse_uint(value)
            except ValueError as exc:
                raise ValueError(f"failed to parse block size {value}: {exc}") from exc
        if key == total_bytes_key:
            try:
                total_bytes = _parse_uint(value)
            except ValueError as exc:
                raise ValueError(f"failed to parse total size {value}: {exc}") from exc
    return block_size, total_bytes


class ResizeFs:
    """Resizes filesystems with the tools for each filesystem type."""

    def __init__(self, executor: Executor | None = None) -> None:
        self.executor = executor if executor is not None else Executor()

    def _format_of(self, device_path: str) -> str:
        try:
            return get_disk_format(self.executor, device_path)
        except (*_COMMAND_ERRORS, ValueError) as exc:
            raise RuntimeError(
                f"ResizeFS.Resize - error checking format for device {device_path}: {exc}"
            ) from exc

    def resize(self, device_path: str, device_mount_path: str) -> bool:
        """Grow the filesystem on ``device_path``; return True when it was resized.

        An unformatted device is left alone and gives False.
        """
        fmt = self._format_of(device_path)
        if not fmt:
            # mkfs uses the whole disk anyway.
            return False

        logger.info("ResizeFS.Resize - Expanding mounted volume %s", device_path)
        if fmt in ("ext3", "ext4"):
            return self._run_resize("resize2fs", [device_path], device_path)
        if fmt == "xfs":
            return self._run_resize("xfs_growfs", ["-d", device_mount_path], device_mount_path)
        if fmt == "btrfs":
            return self._run_resize(
                "btrfs", ["filesystem", "resize", "max", device_mount_path], device_mount_path
            )
        raise RuntimeError(
            f"ResizeFS.Resize - resize of format {fmt} is not supported for device "
            f"{device_path} mounted at {device_mount_path}"
        )

    def _run_resize(self, command: str, args: list[str], device: str) -> bool:
        try:
            self.executor.run(command, args)
        except _COMMAND_ERRORS as exc:
            output = getattr(exc, "output", "")
            raise RuntimeError(
                f"resize of device {device} failed: {exc}. {command} output: {output}"
            ) from exc
        logger.info("Device %s resized successfully", device)
        return True

    def need_resize(self, device_path: str, device_mount_path: str) -> bool:
        """Return whether the filesystem on ``device_path`` should be grown."""
        if self.get_device_ro(device_path):
            logger.info(
                "ResizeFs.needResize - no resize possible since filesystem %s is readonly",
                device_path,
            )
            return False

        fmt = self._format_of(device_path)
        if not fmt:
            return False

        if fmt in ("ext3", "ext4", "xfs"):
            # The resize tools do their own check.
            return True
        if fmt == "btrfs":
            device_size = self.get_device_size(device_path)
            block_size, fs_size = self.get_btrfs_size(device_path)
            logger.debug("Btrfs size: filesystem size=%d, block size=%d", fs_size, block_size)
            return device_size > fs_size + block_size
        raise RuntimeError(
            f"could not parse fs info of given filesystem format: {fmt}. "
            "Supported fs types are: xfs, ext3, ext4"
        )

    def get_device_size(self, device_path: str) -> int:
        """Return the size of the block device in bytes."""
        try:
            output = self.executor.run(BLOCK_DEV, ["--getsize64", device_path])
        except _COMMAND_ERRORS as exc:
            out = getattr(exc, "output", "").strip()
            raise RuntimeError(f"failed to read size of device {device_path}: {exc}: {out}") from exc
        out = output.strip()
        try:
            return _parse_uint(out)
        except ValueError as exc:
            raise ValueError(f"failed to parse size of device {device_path} {out}: {exc}") from exc

    def get_btrfs_size(self, device_path: str) -> tuple[int, int]:
        """Return the btrfs block size and total filesystem size in bytes."""
        try:
            output = self.executor.run(
                "btrfs", ["inspect-internal", "dump-super", "-f", device_path]
            )
        except _COMMAND_ERRORS as exc:
            out = getattr(exc, "output", "")
            raise RuntimeError(
                f"failed to read size of filesystem on {device_path}: {exc}: {out}"
            ) from exc

        try:
            block_size, total_bytes = parse_btrfs_info_output(output, "sectorsize", "total_bytes")
        except ValueError:
            block_size, total_bytes = 0, 0

        if block_size == 0:
            raise RuntimeError(f"could not find block size of device {device_path}")
        if total_bytes == 0:
            raise RuntimeError(f"could not find total size of device {device_path}")
        return block_size, total_bytes

    def get_device_ro(self, device_path: str) -> bool:
        """Return whether the block device is read-only."""
        try:
            output = self.executor.run(BLOCK_DEV, ["--getro", device_path])
        except _COMMAND_ERRORS as exc:
            out = getattr(exc, "output", "").strip()
            raise RuntimeError(
                f"failed to get readonly bit from device {device_path}: {exc}: {out}"
            ) from exc
        out = output.strip()
        if out == "0":
            return False
        if out == "1":
            return True
        raise ValueError(f"failed readonly device check. Expected 1 or 0, got '{out}'")