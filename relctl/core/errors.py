"""Process exit codes.

The numeric values are part of the CLI contract and are read by CI jobs
to decide whether to page someone or trigger a rollback:

- 0: release committed and every service reconciled
- 1: user error (bad arguments, unreadable config)
- 2: aborted before activation, live state untouched
- 3: committed, but one or more services failed to restart
- 4: the active-release pointer could not be swapped
- 5: rollback requested without a previous release
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    OK = 0
    USER_ERROR = 1
    PRECOMMIT_ABORT = 2
    PARTIAL_FAILURE = 3
    ACTIVATION_FAILED = 4
    NO_HISTORY = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
