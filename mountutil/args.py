"""Building mount(8) command lines while keeping secret options out of logs."""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple

SENSITIVE_OPTIONS_REMOVED = "<masked>"


class BindOptions(NamedTuple):
    """Options split for a bind mount followed by a remount."""

    bind: bool
    bind_opts: list[str]
    bind_remount_opts: list[str]
    bind_remount_opts_sensitive: list[str]


def sanitized_options_for_logging(
    options: Sequence[str] | None, sensitive_options: Sequence[str] | None
) -> str:
    """Join options for logging, replacing every sensitive option with a mask."""
    options = list(options or [])
    sensitive_options = list(sensitive_options or [])
    parts = options + [SENSITIVE_OPTIONS_REMOVED] * len(sensitive_options)
    return ",".join(parts)


def make_bind_opts_sensitive(
    options: Sequence[str] | None, sensitive_options: Sequence[str] | None
) -> BindOptions:
    """Detect a bind mount and derive the options for its bind and remount steps."""
    options = list(options or [])
    sensitive_options = list(sensitive_options or [])

    bind_opts = ["bind"]
    # _netdev is userspace-only and is not carried over by a bind mount.
    if "_netdev" in options or "_netdev" in sensitive_options:
        bind_opts.append("_netdev")

    bind = False
    bind_remount_opts = ["bind", "remount"]
    bind_remount_sensitive: list[str] = []
    for source, dest in ((options, bind_remount_opts), (sensitive_options, bind_remount_sensitive)):
        for option in source:
            if option == "bind":
                bind = True
            elif option != "remount":
                dest.append(option)

    return BindOptions(bind, bind_opts, bind_remount_opts, bind_remount_sensitive)


def make_mount_args_sensitive_with_mount_flags(
    source: str,
    target: str,
    fstype: str,
    options: Sequence[str] | None,
    sensitive_options: Sequence[str] | None,
    mount_flags: Sequence[str] | None,
) -> tuple[list[str], str]:
    """Build ``mount [flags] [-t fstype] [-o options] [source] target``.

    Returns the arguments and a log string in which sensitive options are masked.
    """
    options = list(options or [])
    sensitive_options = list(sensitive_options or [])
    mount_flags = list(mount_flags or [])

    mount_args = list(mount_flags)
    log_str = " ".join(mount_flags)

    if fstype:
        mount_args += ["-t", fstype]
        log_str += " ".join(mount_args)
    if options or sensitive_options:
        mount_args += ["-o", ",".join(options + sensitive_options)]
        log_str += " -o " + sanitized_options_for_logging(options, sensitive_options)
    if source:
        mount_args.append(source)
        log_str += " " + source
    mount_args.append(target)
    log_str += " " + target
    return mount_args, log_str


def make_mount_args_sensitive(
    source: str,
    target: str,
    fstype: str,
    options: Sequence[str] | None,
    sensitive_options: Sequence[str] | None,
) -> tuple[list[str], str]:
    """Build mount arguments and a masked log string, without extra flags."""
    return make_mount_args_sensitive_with_mount_flags(
        source, target, fstype, options, sensitive_options, None
    )


def make_mount_args(
    source: str, target: str, fstype: str, options: Sequence[str] | None
) -> list[str]:
    """Build mount arguments; options must not hold secret material."""
    args, _ = make_mount_args_sensitive(source, target, fstype, options, None)
    return args


def _systemd_run_prefix(mount_name: str, command: str) -> list[str]:
    return [f"--description=Kubernetes transient mount for {mount_name}", "--scope", "--", command]


def add_systemd_scope(
    systemd_run_path: str, mount_name: str, command: str, args: Sequence[str]
) -> tuple[str, list[str]]:
    """Wrap a command line in ``systemd-run --scope``."""
    return systemd_run_path, _systemd_run_prefix(mount_name, command) + list(args)


def add_systemd_scope_sensitive(
    systemd_run_path: str,
    mount_name: str,
    command: str,
    args: Sequence[str],
    mount_args_log_str: str,
) -> tuple[str, list[str], str]:
    """Wrap a command line in ``systemd-run --scope`` and extend its log string."""
    prefix = _systemd_run_prefix(mount_name, command)
    return systemd_run_path, prefix + list(args), " ".join(prefix) + " " + mount_args_log_str