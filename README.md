# mountutil

Helpers for mounting, unmounting, formatting and resizing filesystems on Linux.
The package runs the usual system tools (`mount`, `umount`, `systemd-run`,
`blkid`, `fsck`, `mkfs.*`, `resize2fs`, `xfs_growfs`, `btrfs`, `blockdev`) and
reads `/proc/mounts` and `/proc/self/mountinfo`. It has no dependencies
outside the standard library.

Most operations need root privileges.

## Installation

```
pip install mountutil
```

## Modules

- `mountutil.executor` – `Executor.run(command, args)` runs a command and
  returns its combined stdout and stderr; it raises `ExecutableNotFoundError`
  or `ExitError` (with `exit_status` and `output`).
- `mountutil.args` – builds `mount(8)` argument lists and log strings in
  which sensitive options are masked (`make_mount_args`,
  `make_mount_args_sensitive`, `make_mount_args_sensitive_with_mount_flags`,
  `add_systemd_scope`, `add_systemd_scope_sensitive`,
  `sanitized_options_for_logging`, `make_bind_opts_sensitive`).
- `mountutil.procmounts` – `MountPoint`, `MountInfo`, `parse_proc_mounts`,
  `list_proc_mounts`, `parse_mount_info`, `search_mount_points`,
  `path_within_base`.
- `mountutil.diskformat` – `get_disk_format(executor, disk)` asks `blkid`
  which filesystem a disk holds.
- `mountutil.mounter` – `Mounter` and the factories `new_mounter` and
  `new_mounter_without_systemd`.
- `mountutil.safe_format` – `SafeFormatAndMount`.
- `mountutil.resizefs` – `ResizeFs` and `parse_btrfs_info_output`.
- `mountutil.errors` – `MountError` and `MountErrorType`.

## Mounting and unmounting

```python
from mountutil.mounter import new_mounter

mounter = new_mounter("")
mounter.mount("/dev/sdb1", "/mnt/data", "ext4", ["rw"])

# Options that must never show up in logs go in a separate list.
password = "password"
secret_options = [f"password={password}"]
mounter.mount_sensitive("//server/share", "/mnt/share", "cifs",
                        ["vers=3.0"], secret_options)

print(mounter.is_mount_point("/mnt/data"))
print(mounter.get_mount_refs("/mnt/data"))

mounter.unmount_with_force("/mnt/data", 30.0)
```

`new_mounter` probes `umount` once on a temporary directory to learn whether
it answers "not mounted" for paths that are not mount points; when it does,
`unmount` treats that answer as success and
`can_safely_skip_mount_point_check()` returns `True`.

When `systemd-run --scope` works on the host, mounts run inside a transient
systemd scope so that FUSE daemons outlive the calling service. Use
`new_mounter_without_systemd` or `mount_sensitive_without_systemd` to turn
that off. Bind mounts (`"bind"` in the options) are done in two steps: a bind,
then a remount that carries over the source filesystem's `ro`, `nodev`,
`noexec`, `nosuid`, `noatime`, `relatime` and `nodiratime` flags. For `nfs`,
`glusterfs`, `ceph` and `cifs`, the mounter path given to the factory is run
in place of `mount`.

A failed mount or unmount raises `RuntimeError`; a path that cannot be
examined raises `OSError`.

## Formatting on first use

```python
from mountutil.executor import Executor
from mountutil.mounter import new_mounter
from mountutil.safe_format import SafeFormatAndMount

safe = SafeFormatAndMount(new_mounter(""), Executor(), 2, 120.0)
safe.format_and_mount("/dev/sdc", "/mnt/volume", "ext4", [])
```

An unformatted disk is formatted (ext4 when no type is given) before
mounting; an unformatted disk requested read-only is refused. A formatted
disk is checked with `fsck -a` when it is mounted read-write. A disk holding a
partition table is never formatted. `max_concurrent_format` limits how many
`mkfs` commands run at once; a slot is freed when the command ends or after
`format_timeout` seconds. Failures raise `MountError`, whose `error_type` is a
`MountErrorType` such as `FORMAT_FAILED`, `FILESYSTEM_MISMATCH` or
`HAS_FILESYSTEM_ERRORS`.

## Growing a filesystem

```python
from mountutil.executor import Executor
from mountutil.resizefs import ResizeFs

resizer = ResizeFs(Executor())
if resizer.need_resize("/dev/sdc", "/mnt/volume"):
    resizer.resize("/dev/sdc", "/mnt/volume")
```

ext3, ext4, xfs and btrfs are supported. A read-only device never needs a
resize; for btrfs, the device size is compared with the filesystem size.

## Parsing mount tables

```python
from mountutil.procmounts import list_proc_mounts, search_mount_points

for mp in list_proc_mounts("/proc/mounts"):
    print(mp.device, mp.path, mp.type, mp.opts)

print(search_mount_points("/mnt/disks/vol1", "/proc/self/mountinfo"))
```

## What it does not do

- There is no command-line program; the package is a library only.
- Only Linux is supported. There is no Windows or other platform backend.