"""Error types raised while formatting and mounting disks."""

from __future__ import annotations

from enum import Enum


class MountErrorType(Enum):
    """Classification of a failed format-and-mount operation."""

    FILESYSTEM_MISMATCH = "FilesystemMismatch"
    HAS_FILESYSTEM_ERRORS = "HasFilesystemErrors"
    UNFORMATTED_READ_ONLY = "UnformattedReadOnly"
    FORMAT_FAILED = "FormatFailed"
    GET_DISK_FORMAT_FAILED = "GetDiskFormatFailed"
    UNKNOWN_MOUNT_ERROR = "UnknownMountError"


class MountError(Exception):
    """A mount failure tagged with its MountErrorType."""

    def __init__(self, error_type: MountErrorType, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message

    def __str__(self) -> str:
        return self.message