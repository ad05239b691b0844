"""Tests for relctl.core.errors module."""

from relctl.core.errors import ErrorCode


def test_exit_code_values_are_stable() -> None:
    assert int(ErrorCode.OK) == 0
    assert int(ErrorCode.USER_ERROR) == 1
    assert int(ErrorCode.PRECOMMIT_ABORT) == 2
    assert int(ErrorCode.PARTIAL_FAILURE) == 3
    assert int(ErrorCode.ACTIVATION_FAILED) == 4
    assert int(ErrorCode.NO_HISTORY) == 5


def test_is_success() -> None:
    assert ErrorCode.OK.is_success
    assert not ErrorCode.PARTIAL_FAILURE.is_success


def test_str() -> None:
    assert str(ErrorCode.PRECOMMIT_ABORT) == "precommit abort"
