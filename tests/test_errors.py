import pytest

from mountutil.errors import MountError, MountErrorType


def test_mount_error_keeps_type_and_message():
    message = "cannot mount unformatted disk /dev/x"
    error = MountError(MountErrorType.UNFORMATTED_READ_ONLY, message)
    assert error.error_type is MountErrorType.UNFORMATTED_READ_ONLY
    assert error.message == message
    assert str(error) == message


def test_mount_error_is_an_exception_with_its_type():
    error = MountError(MountErrorType.FORMAT_FAILED, "format failed")
    assert isinstance(error, Exception)
    assert error.error_type is MountErrorType.FORMAT_FAILED
    assert str(error) == "format failed"


def test_mount_errors_keep_distinct_types():
    first = MountError(MountErrorType.FORMAT_FAILED, "a")
    second = MountError(MountErrorType.UNFORMATTED_READ_ONLY, "b")
    assert first.error_type is not second.error_type
    assert (str(first), str(second)) == ("a", "b")


@pytest.mark.parametrize("member", list(MountErrorType))
def test_error_type_value_round_trip(member):
    assert MountErrorType(member.value) is member