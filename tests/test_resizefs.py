import pytest

from mountutil.executor import ExitError
from mountutil.resizefs import ResizeFs, parse_btrfs_info_output


class FakeExecutor:
    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def run(self, command, args=()):
        self.calls.append((command, list(args)))
        if not self.script:
            raise AssertionError(f"unexpected command {command} {args}")
        result = self.script.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


BTRFS_SUCCESS = """superblock: bytenr=65536, device=/dev/loop0
    ---------------------------------------------------------
    csum_type               0 (crc32c)
    csum_size               4
    csum                    0x00000000 [match]
    bytenr                  65536
    flags                   0x1
                            ( WRITTEN )
    magic                   _BHRfS_M [match]
    fsid                    00000000-0000-0000-0000-000000000001
    metadata_uuid           00000000-0000-0000-0000-000000000001
    label
    generation              7
    root                    30441472
    sys_array_size          129
    chunk_root_generation   6
    root_level              0
    chunk_root              22036480
    chunk_root_level        0
    log_root                0
    log_root_transid        0
    log_root_level          0
    total_bytes             1048576000
    bytes_used              147456
    sectorsize              4096
    nodesize                16384
    leafsize (deprecated)   16384
    stripesize              4096
    root_dir                6
    num_devices             1
    compat_flags            0x0
    compat_ro_flags         0x3
                            ( FREE_SPACE_TREE |
                              FREE_SPACE_TREE_VALID )
    incompat_flags          0x341
                            ( MIXED_BACKREF |
                              EXTENDED_IREF |
                              SKINNY_METADATA |
                              NO_HOLES )
    cache_generation        0
    uuid_tree_generation    7
    dev_item.uuid           00000000-0000-0000-0000-000000000002
    dev_item.fsid           00000000-0000-0000-0000-000000000001 [match]
    dev_item.type           0
    dev_item.total_bytes    1048576000
    dev_item.bytes_used     130023424
    dev_item.io_align       4096
    dev_item.io_width       4096
    dev_item.sector_size    4096
    dev_item.devid          1
    dev_item.dev_group      0
    dev_item.seek_speed     0
    dev_item.bandwidth      0
    dev_item.generation     0
    sys_chunk_array[2048]:
            item 0 key (FIRST_CHUNK_TREE CHUNK_ITEM 22020096)
                    length 8388608 owner 2 stripe_len 65536 type SYSTEM|DUP
                    io_align 65536 io_width 65536 sector_size 4096
                    num_stripes 2 sub_stripes 1
                            stripe 0 devid 1 offset 22020096
                            dev_uuid 00000000-0000-0000-0000-000000000002
                            stripe 1 devid 1 offset 30408704
                            dev_uuid 00000000-0000-0000-0000-000000000002
    backup_roots[4]:
            backup 0:
                    backup_tree_root:       30441472        gen: 5  level: 0
                    backup_chunk_root:      22020096        gen: 5  level: 0
                    backup_extent_root:     30474240        gen: 5  level: 0
                    backup_fs_root:         30425088        gen: 5  level: 0
                    backup_dev_root:        30457856        gen: 5  level: 0
                    backup_csum_root:       30490624        gen: 5  level: 0
                    backup_total_bytes:     1048576000
                    backup_bytes_used:      147456
                    backup_num_devices:     1

            backup 3:
                    backup_tree_root:       30408704        gen: 4  level: 0
                    backup_chunk_root:      1064960 gen: 4  level: 0
                    backup_extent_root:     5341184 gen: 4  level: 0
                    backup_fs_root:         5324800 gen: 3  level: 0
                    backup_dev_root:        5242880 gen: 4  level: 0
                    backup_csum_root:       1130496 gen: 1  level: 0
                    backup_total_bytes:     1048576000
                    backup_bytes_used:      114688
                    backup_num_devices:     1

    """

BTRFS_NO_DATA = "\n".join(
    line
    for line in BTRFS_SUCCESS.split("\n")
    if line.split()[:1] not in (["total_bytes"], ["sectorsize"])
)


def test_get_btrfs_size_success():
    executor = FakeExecutor([BTRFS_SUCCESS])
    block_size, fs_size = ResizeFs(executor).get_btrfs_size("/dev/test1")
    assert block_size == 4096
    assert fs_size == 1048576000
    assert executor.calls == [("btrfs", ["inspect-internal", "dump-super", "-f", "/dev/test1"])]


def test_get_btrfs_size_block_size_missing():
    executor = FakeExecutor([BTRFS_NO_DATA])
    with pytest.raises(RuntimeError, match="could not find block size"):
        ResizeFs(executor).get_btrfs_size("/dev/test1")


def test_get_btrfs_size_total_missing():
    executor = FakeExecutor(["sectorsize 4096\n"])
    with pytest.raises(RuntimeError, match="could not find total size"):
        ResizeFs(executor).get_btrfs_size("/dev/test1")


def test_get_btrfs_size_unparsable_value():
    executor = FakeExecutor(["sectorsize abc\ntotal_bytes 10\n"])
    with pytest.raises(RuntimeError, match="could not find block size"):
        ResizeFs(executor).get_btrfs_size("/dev/test1")


def test_parse_btrfs_info_output_values():
    assert parse_btrfs_info_output("SectorSize 512\ntotal_bytes 2048\n", "sectorsize", "total_bytes") == (512, 2048)
    assert parse_btrfs_info_output("nothing here", "sectorsize", "total_bytes") == (0, 0)


def test_parse_btrfs_info_output_invalid():
    with pytest.raises(ValueError):
        parse_btrfs_info_output("total_bytes -5\n", "sectorsize", "total_bytes")


@pytest.mark.parametrize(
    "readonly, fs_type_output, device_size, ext_size, expect_error, expected",
    [
        ("0", "TYPE=ext3", "2048", "20", False, True),
        ("1", "TYPE=ext3", "2048", "20", False, False),
        ("0", "TYPE=btrfs", "20", "2048", False, False),
        ("0", "TYPE=btrfs", "2048", "20", False, True),
        ("0", "TYPE=ntfs", "2048", "1", True, False),
    ],
)
def test_need_resize(readonly, fs_type_output, device_size, ext_size, expect_error, expected):
    script = [readonly, fs_type_output]
    if fs_type_output == "TYPE=btrfs":
        script += [device_size, f"sectorsize {ext_size}\ntotal_bytes 1\n"]
    resizer = ResizeFs(FakeExecutor(script))
    if expect_error:
        with pytest.raises(RuntimeError):
            resizer.need_resize("/dev/test1", "/mnt/test1")
    else:
        assert resizer.need_resize("/dev/test1", "/mnt/test1") is expected


def test_need_resize_unformatted():
    resizer = ResizeFs(FakeExecutor(["0", ExitError(2, "")]))
    assert resizer.need_resize("/dev/test1", "/mnt/test1") is False


@pytest.mark.parametrize("output, expected", [("0\n", False), ("1", True)])
def test_get_device_ro(output, expected):
    executor = FakeExecutor([output])
    assert ResizeFs(executor).get_device_ro("/dev/test1") is expected
    assert executor.calls == [("blockdev", ["--getro", "/dev/test1"])]


def test_get_device_ro_unexpected_output():
    with pytest.raises(ValueError, match="got '2'"):
        ResizeFs(FakeExecutor(["2"])).get_device_ro("/dev/test1")


def test_get_device_ro_command_failure():
    with pytest.raises(RuntimeError, match="failed to get readonly bit"):
        ResizeFs(FakeExecutor([ExitError(1, "denied")])).get_device_ro("/dev/test1")


def test_get_device_size():
    executor = FakeExecutor([" 2048\n"])
    assert ResizeFs(executor).get_device_size("/dev/test1") == 2048
    assert executor.calls == [("blockdev", ["--getsize64", "/dev/test1"])]


def test_get_device_size_invalid():
    with pytest.raises(ValueError, match="failed to parse size"):
        ResizeFs(FakeExecutor(["abc"])).get_device_size("/dev/test1")


def test_get_device_size_command_failure():
    with pytest.raises(RuntimeError, match="failed to read size"):
        ResizeFs(FakeExecutor([ExitError(1, "")])).get_device_size("/dev/test1")


@pytest.mark.parametrize(
    "fs_type, command",
    [
        ("ext4", ("resize2fs", ["/dev/test1"])),
        ("ext3", ("resize2fs", ["/dev/test1"])),
        ("xfs", ("xfs_growfs", ["-d", "/mnt/test1"])),
        ("btrfs", ("btrfs", ["filesystem", "resize", "max", "/mnt/test1"])),
    ],
)
def test_resize_runs_tool(fs_type, command):
    executor = FakeExecutor([f"TYPE={fs_type}\n", ""])
    assert ResizeFs(executor).resize("/dev/test1", "/mnt/test1") is True
    assert executor.calls[1] == command


def test_resize_unformatted_does_nothing():
    executor = FakeExecutor([ExitError(2, "")])
    assert ResizeFs(executor).resize("/dev/test1", "/mnt/test1") is False
    assert len(executor.calls) == 1


def test_resize_unsupported_format():
    with pytest.raises(RuntimeError, match="resize of format ntfs is not supported"):
        ResizeFs(FakeExecutor(["TYPE=ntfs\n"])).resize("/dev/test1", "/mnt/test1")


def test_resize_tool_failure():
    executor = FakeExecutor(["TYPE=ext4\n", ExitError(1, "no space")])
    with pytest.raises(RuntimeError, match="resize2fs output: no space"):
        ResizeFs(executor).resize("/dev/test1", "/mnt/test1")


def test_resize_format_check_failure():
    with pytest.raises(RuntimeError, match="error checking format"):
        ResizeFs(FakeExecutor([ExitError(1, "")])).resize("/dev/test1", "/mnt/test1")