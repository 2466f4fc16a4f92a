"""Detecting the filesystem or partition table on a disk with blkid."""

from __future__ import annotations

import logging

from mountutil.executor import Executor, ExitError

logger = logging.getLogger(__name__)

PARTITIONED_DISK_FORMAT = "unknown data, probably partitions"


def get_disk_format(executor: Executor, disk: str) -> str:
    """Return the filesystem type on ``disk``, or "" when it is unformatted.

    A disk holding a partition table reports a special non-empty format so
    that callers never format it.
    """
    args = ["-p", "-s", "TYPE", "-s", "PTTYPE", "-o", "export", disk]
    logger.debug(
        "Attempting to determine if disk %r is formatted using blkid with args: (%s)",
        disk,
        args,
    )
    try:
        output = executor.run("blkid", args)
    except ExitError as exc:
        logger.debug("Output: %r", exc.output)
        if exc.exit_status == 2:
            # blkid exits with 2 when no device or requested token was identified.
            return ""
        logger.error("Could not determine if disk %r is formatted (%s)", disk, exc)
        raise
    except Exception as exc:
        logger.error("Could not determine if disk %r is formatted (%s)", disk, exc)
        raise
    logger.debug("Output: %r", output)

    fstype = ""
    pttype = ""
    for line in output.split("\n"):
        if not line:
            continue
        parts = line.split("=")
        if len(parts) != 2:
            raise ValueError(f"blkid returns invalid output: {output}")
        key, value = parts
        # TYPE is the filesystem type, PTTYPE the partition table type.
        if key == "TYPE":
            fstype = value
        elif key == "PTTYPE":
            pttype = value

    if pttype:
        logger.debug("Disk %s detected partition table type: %s", disk, pttype)
        return PARTITIONED_DISK_FORMAT

    return fstype