from __future__ import annotations

from typing import Iterator, Protocol

from schtask.errors import hresult_hex
from schtask.guid import Guid

S_OK = 0
S_FALSE = 1
E_NOINTERFACE = 0x80004002
RPC_E_TOO_LATE = 0x80010119
DISP_E_EXCEPTION = 0x80020009

RPC_C_AUTHN_LEVEL_PKT_PRIVACY = 6
RPC_C_IMP_LEVEL_IMPERSONATE = 3
EOAC_NONE = 0

TASK_TRIGGER_LOGON = 9
TASK_ACTION_EXEC = 0
TASK_CREATE_OR_UPDATE = 6
TASK_LOGON_INTERACTIVE_TOKEN = 3

CLASS_TABLE = "CLSID"
INTERFACE_TABLE = "Interface"


class ComCallError(Exception):
    def __init__(self, hresult: int, detail: str = "") -> None:
        self.hresult = int(hresult) & 0xFFFFFFFF
        self.detail = detail
        super().__init__(f"{detail or 'COM call failed'}: {hresult_hex(self.hresult)}")


def extract_hresult(ex: BaseException) -> int:
    """Return the unsigned status code carried by a COM error.

    Dispatch calls that fail inside the server report DISP_E_EXCEPTION and
    put the real code in the sixth ``excepinfo`` field.
    """

    hr = getattr(ex, "hresult", None)
    if hr is None and ex.args:
        hr = ex.args[0]
    try:
        code = int(hr) & 0xFFFFFFFF
    except (TypeError, ValueError):
        return E_NOINTERFACE

    if code == DISP_E_EXCEPTION:
        info = getattr(ex, "excepinfo", None)
        if info is None and len(ex.args) > 2:
            info = ex.args[2]
        try:
            scode = int(info[5]) if info else 0
        except (IndexError, TypeError, ValueError):
            scode = 0
        if scode:
            return scode & 0xFFFFFFFF
    return code


class Handle(Protocol):
    def release(self) -> None: ...


class RegistrationTable(Protocol):
    def keys(self) -> Iterator[str]: ...

    def default_value(self, key: str) -> str: ...

    def close(self) -> None: ...


class RegistrationInfo(Handle, Protocol):
    def set_author(self, author: str) -> None: ...


class TaskSettings(Handle, Protocol):
    def set_start_when_available(self, value: bool) -> None: ...


class LogonTrigger(Handle, Protocol):
    def set_id(self, trigger_id: str) -> None: ...

    def set_start_boundary(self, boundary: str) -> None: ...

    def set_end_boundary(self, boundary: str) -> None: ...

    def set_user_id(self, user_id: str) -> None: ...


class Trigger(Handle, Protocol):
    def query_logon_trigger(self) -> LogonTrigger: ...


class TriggerCollection(Handle, Protocol):
    def create(self, trigger_type: int) -> Trigger: ...


class ExecAction(Handle, Protocol):
    def set_path(self, path: str) -> None: ...

    def set_arguments(self, arguments: str) -> None: ...


class Action(Handle, Protocol):
    def query_exec_action(self) -> ExecAction: ...


class ActionCollection(Handle, Protocol):
    def create(self, action_type: int) -> Action: ...


class TaskDefinition(Handle, Protocol):
    def registration_info(self) -> RegistrationInfo: ...

    def settings(self) -> TaskSettings: ...

    def triggers(self) -> TriggerCollection: ...

    def actions(self) -> ActionCollection: ...


class RegisteredTask(Handle, Protocol):
    pass


class TaskFolder(Handle, Protocol):
    def delete_task(self, name: str) -> None: ...

    def register_task_definition(
        self,
        name: str,
        definition: TaskDefinition,
        *,
        flags: int,
        logon_type: int,
    ) -> RegisteredTask | None: ...


class TaskService(Handle, Protocol):
    def connect(self) -> None: ...

    def get_folder(self, path: str) -> TaskFolder: ...

    def new_task(self) -> TaskDefinition: ...


class RegistrationDatabase(Protocol):
    def open_registration_table(self, name: str) -> RegistrationTable: ...


class SchedulerBackend(RegistrationDatabase, Protocol):
    """Everything the core needs from the host: COM runtime, registry, scheduler."""

    def initialize_runtime(self) -> int:
        """Return S_OK or S_FALSE (already initialized); raise ComCallError otherwise."""
        ...

    def initialize_security(self) -> None: ...

    def uninitialize_runtime(self) -> None: ...

    def create_service(self, clsid: Guid, iid: Guid) -> TaskService: ...
