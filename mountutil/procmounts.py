"""Parsing /proc/mounts and /proc/self/mountinfo and searching mount references."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from os import PathLike

# Number of fields per line in /proc/mounts as per the fstab man page.
EXPECTED_NUM_FIELDS_PER_LINE = 6
# A mountinfo line has at least this many fields (with no optional fields).
EXPECTED_AT_LEAST_NUM_FIELDS_PER_MOUNT_INFO = 10

_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class MountPoint:
    """One entry of /proc/mounts."""

    device: str
    path: str
    type: str = ""
    opts: list[str] = field(default_factory=list)
    freq: int = 0
    pass_: int = 0


@dataclass
class MountInfo:
    """One entry of /proc/<pid>/mountinfo."""

    id: int
    parent_id: int
    major: int
    minor: int
    root: str
    source: str
    mount_point: str
    optional_fields: list[str] = field(default_factory=list)
    fs_type: str = ""
    mount_options: list[str] = field(default_factory=list)
    super_options: list[str] = field(default_factory=list)


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    return int(text)


def _read_text(path: str | PathLike[str]) -> str:
    with open(path, "rb") as handle:
        return handle.read().decode("utf-8", errors="replace")


def _clean(path: str) -> str:
    cleaned = posixpath.normpath(path) if path else "."
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _join(*parts: str) -> str:
    non_empty = [part for part in parts if part]
    if not non_empty:
        return ""
    return _clean("/".join(non_empty))


def parse_proc_mounts(content: bytes | str) -> list[MountPoint]:
    """Parse the text of /proc/mounts into MountPoint entries."""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    mounts: list[MountPoint] = []
    for line in content.split("\n"):
        if not line:
            continue
        fields = line.split()
        if len(fields) != EXPECTED_NUM_FIELDS_PER_LINE:
            # The line itself is not reported: it may hold sensitive options.
            raise ValueError(
                f"wrong number of fields (expected {EXPECTED_NUM_FIELDS_PER_LINE}, "
                f"got {len(fields)})"
            )
        mounts.append(
            MountPoint(
                device=fields[0],
                path=fields[1],
                type=fields[2],
                opts=fields[3].split(","),
                freq=_atoi(fields[4]),
                pass_=_atoi(fields[5]),
            )
        )
    return mounts


def list_proc_mounts(mount_file_path: str | PathLike[str]) -> list[MountPoint]:
    """Return all mounted filesystems listed in a /proc/mounts style file."""
    return parse_proc_mounts(_read_text(mount_file_path))


def parse_mount_info(path: str | PathLike[str]) -> list[MountInfo]:
    """Parse a /proc/<pid>/mountinfo style file."""
    infos: list[MountInfo] = []
    for line in _read_text(path).split("\n"):
        if not line:
            continue
        fields = line.split()
        if len(fields) < EXPECTED_AT_LEAST_NUM_FIELDS_PER_MOUNT_INFO:
            raise ValueError(
                "wrong number of fields in (expected at least "
                f"{EXPECTED_AT_LEAST_NUM_FIELDS_PER_MOUNT_INFO}, got {len(fields)}): {line}"
            )
        mount_id = _atoi(fields[0])
        parent_id = _atoi(fields[1])
        major_minor = fields[2].split(":")
        if len(major_minor) != 2:
            raise ValueError(f"parsing '{fields[2]}' failed: unexpected minor:major pair {line}")
        major = _atoi(major_minor[0])
        minor = _atoi(major_minor[1])

        rest = fields[6:]
        try:
            separator = rest.index("-")
        except ValueError:
            separator = len(rest)
        optional_fields = rest[:separator]
        tail = rest[separator + 1:]
        if len(tail) < 3:
            raise ValueError(f"expect 3 fields in {line}, got {len(tail)}")

        infos.append(
            MountInfo(
                id=mount_id,
                parent_id=parent_id,
                major=major,
                minor=minor,
                root=fields[3],
                source=tail[1],
                mount_point=fields[4],
                optional_fields=optional_fields,
                fs_type=tail[0],
                mount_options=fields[5].split(","),
                super_options=tail[2].split(","),
            )
        )
    return infos


def path_within_base(full_path: str, base_path: str) -> bool:
    """Return True when ``full_path`` lies inside (or equals) ``base_path``."""
    if posixpath.isabs(full_path) != posixpath.isabs(base_path):
        return False
    rel = posixpath.relpath(_clean(full_path), _clean(base_path))
    return not (rel == ".." or rel.startswith("../"))


def search_mount_points(host_source: str, mount_info_path: str | PathLike[str]) -> list[str]:
    """Find every other mount point that refers to the same source as ``host_source``.

    The source is identified by its root path within the filesystem and its
    major:minor device numbers, so bind mounts of subdirectories are found too.
    """
    infos = parse_mount_info(mount_info_path)

    match: MountInfo | None = None
    root_path = ""
    # Later mounts may overlap earlier ones, so search from the end.
    for info in reversed(infos):
        if host_source == info.mount_point or path_within_base(host_source, info.mount_point):
            match = info
            root_path = _join(info.root, host_source.removeprefix(info.mount_point))
            break

    if match is None or not root_path:
        raise ValueError(f"failed to get root path and major:minor for {host_source}")

    return [
        info.mount_point
        for info in infos
        if info.id != match.id
        and info.root == root_path
        and info.major == match.major
        and info.minor == match.minor
    ]