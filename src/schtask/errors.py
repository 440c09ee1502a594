from __future__ import annotations

from enum import Enum, IntEnum


def hresult_hex(hr: int) -> str:
    """Render an HRESULT the way Windows tools print it (unsigned, lowercase)."""
    return format(int(hr) & 0xFFFFFFFF, "x")


class ErrorKind(str, Enum):
    RUNTIME_INIT = "runtime_init"
    SECURITY_INIT = "security_init"
    IDENTIFIER_LOOKUP = "identifier_lookup"
    IDENTIFIER_FORMAT = "identifier_format"
    BUILD_STAGE = "build_stage"
    COMMIT = "commit"
    UNEXPECTED = "unexpected"


class Stage(IntEnum):
    """Steps of the task-definition build, in execution order."""

    CREATE_SERVICE = 1
    CONNECT = 2
    GET_ROOT_FOLDER = 3
    DELETE_EXISTING = 4
    NEW_DEFINITION = 5
    REGISTRATION_INFO = 6
    SETTINGS = 7
    CREATE_TRIGGER = 8
    QUERY_LOGON_TRIGGER = 9
    CONFIGURE_LOGON_TRIGGER = 10
    CREATE_ACTION = 11
    QUERY_EXEC_ACTION = 12
    CONFIGURE_EXEC_ACTION = 13


class TaskSchedulerError(Exception):
    """Base error; ``str()`` is the text returned by ``create_task``."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, *, hresult: int | None = None) -> None:
        self.message = message
        self.hresult = None if hresult is None else int(hresult) & 0xFFFFFFFF
        super().__init__(message)

    def __str__(self) -> str:
        if self.hresult is None:
            return self.message
        return f"{self.message}: {hresult_hex(self.hresult)}"


class RuntimeInitError(TaskSchedulerError):
    kind = ErrorKind.RUNTIME_INIT

    def __init__(self, hresult: int) -> None:
        super().__init__("Failed to initialize COM", hresult=hresult)


class SecurityInitError(TaskSchedulerError):
    kind = ErrorKind.SECURITY_INIT

    def __init__(self, hresult: int) -> None:
        super().__init__("Failed to initialize COM security", hresult=hresult)


class GuidFormatError(TaskSchedulerError, ValueError):
    kind = ErrorKind.IDENTIFIER_FORMAT


class IdentifierLookupError(TaskSchedulerError):
    kind = ErrorKind.IDENTIFIER_LOOKUP

    def __init__(self, detail: str, *, format_error: bool = False) -> None:
        self.detail = detail
        if format_error:
            self.kind = ErrorKind.IDENTIFIER_FORMAT
        super().__init__(f"Failed to find Task Scheduler GUIDs: {detail}")


class StageError(TaskSchedulerError):
    kind = ErrorKind.BUILD_STAGE

    def __init__(self, stage: Stage, message: str, hresult: int) -> None:
        self.stage = stage
        super().__init__(message, hresult=hresult)


class CommitError(TaskSchedulerError):
    kind = ErrorKind.COMMIT

    def __init__(self, hresult: int) -> None:
        super().__init__("Error saving the Task", hresult=hresult)
