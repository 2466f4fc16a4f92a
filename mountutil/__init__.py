"""Mount, unmount, format and resize filesystems on Linux with the system tools."""

__version__ = "0.1.0"