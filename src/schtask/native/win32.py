"""pywin32 + winreg implementation of the native layer (Windows only).

COM pointers are released by dropping the last Python reference, so each
wrapper's ``release()`` clears its reference.
"""

from __future__ import annotations

import sys
import winreg
from contextlib import contextmanager
from typing import Any, Iterator

# Importing pythoncom initializes COM on this thread with these flags.
# Must match the multithreaded apartment requested in initialize_runtime.
sys.coinit_flags = 0  # COINIT_MULTITHREADED

import pythoncom  # type: ignore[import-not-found]  # noqa: E402
import pywintypes  # type: ignore[import-not-found]  # noqa: E402
import win32com.client  # type: ignore[import-not-found]  # noqa: E402
from win32com.client import gencache  # type: ignore[import-not-found]  # noqa: E402

from schtask.guid import Guid  # noqa: E402
from schtask.native.base import (  # noqa: E402
    E_NOINTERFACE,
    EOAC_NONE,
    RPC_C_AUTHN_LEVEL_PKT_PRIVACY,
    RPC_C_IMP_LEVEL_IMPERSONATE,
    S_OK,
    ComCallError,
    extract_hresult,
)

_COM_ERRORS = (pywintypes.com_error, pythoncom.com_error)
_ERROR_NO_MORE_ITEMS = 259


@contextmanager
def _com_call(detail: str) -> Iterator[None]:
    try:
        yield
    except _COM_ERRORS as ex:
        raise ComCallError(extract_hresult(ex), detail) from ex


class _ComHandle:
    def __init__(self, obj: Any) -> None:
        self._obj = obj

    @property
    def obj(self) -> Any:
        if self._obj is None:
            raise RuntimeError(f"{type(self).__name__} used after release")
        return self._obj

    def release(self) -> None:
        self._obj = None

    def _put(self, name: str, value: Any) -> None:
        with _com_call(f"put_{name}"):
            setattr(self.obj, name, value)

    def _get(self, name: str) -> Any:
        with _com_call(f"get_{name}"):
            return getattr(self.obj, name)


class _RegistrationInfo(_ComHandle):
    def set_author(self, author: str) -> None:
        self._put("Author", author)


class _Settings(_ComHandle):
    def set_start_when_available(self, value: bool) -> None:
        self._put("StartWhenAvailable", bool(value))


class _LogonTrigger(_ComHandle):
    def set_id(self, trigger_id: str) -> None:
        self._put("Id", trigger_id)

    def set_start_boundary(self, boundary: str) -> None:
        self._put("StartBoundary", boundary)

    def set_end_boundary(self, boundary: str) -> None:
        self._put("EndBoundary", boundary)

    def set_user_id(self, user_id: str) -> None:
        self._put("UserId", user_id)


def _cast(handle: _ComHandle, interface: str) -> Any:
    # CastTo performs QueryInterface for the makepy-generated interface.
    with _com_call(f"QueryInterface({interface})"):
        try:
            return win32com.client.CastTo(handle.obj, interface)
        except (ValueError, AttributeError, KeyError) as ex:
            raise ComCallError(E_NOINTERFACE, f"QueryInterface({interface})") from ex


class _Trigger(_ComHandle):
    def query_logon_trigger(self) -> _LogonTrigger:
        return _LogonTrigger(_cast(self, "ILogonTrigger"))


class _TriggerCollection(_ComHandle):
    def create(self, trigger_type: int) -> _Trigger:
        with _com_call("ITriggerCollection::Create"):
            return _Trigger(self.obj.Create(trigger_type))


class _ExecAction(_ComHandle):
    def set_path(self, path: str) -> None:
        self._put("Path", path)

    def set_arguments(self, arguments: str) -> None:
        self._put("Arguments", arguments)


class _Action(_ComHandle):
    def query_exec_action(self) -> _ExecAction:
        return _ExecAction(_cast(self, "IExecAction"))


class _ActionCollection(_ComHandle):
    def create(self, action_type: int) -> _Action:
        with _com_call("IActionCollection::Create"):
            return _Action(self.obj.Create(action_type))


class _TaskDefinition(_ComHandle):
    def registration_info(self) -> _RegistrationInfo:
        return _RegistrationInfo(self._get("RegistrationInfo"))

    def settings(self) -> _Settings:
        return _Settings(self._get("Settings"))

    def triggers(self) -> _TriggerCollection:
        return _TriggerCollection(self._get("Triggers"))

    def actions(self) -> _ActionCollection:
        return _ActionCollection(self._get("Actions"))


class _RegisteredTask(_ComHandle):
    pass


class _TaskFolder(_ComHandle):
    def delete_task(self, name: str) -> None:
        with _com_call("ITaskFolder::DeleteTask"):
            self.obj.DeleteTask(name, 0)

    def register_task_definition(
        self,
        name: str,
        definition: _TaskDefinition,
        *,
        flags: int,
        logon_type: int,
    ) -> _RegisteredTask | None:
        with _com_call("ITaskFolder::RegisterTaskDefinition"):
            # Empty user/password: run with the interactive user's token.
            registered = self.obj.RegisterTaskDefinition(
                name,
                definition.obj,
                flags,
                pythoncom.Empty,
                pythoncom.Empty,
                logon_type,
                pythoncom.Empty,
            )
        return _RegisteredTask(registered) if registered is not None else None


class _TaskService(_ComHandle):
    def connect(self) -> None:
        with _com_call("ITaskService::Connect"):
            self.obj.Connect()

    def get_folder(self, path: str) -> _TaskFolder:
        with _com_call("ITaskService::GetFolder"):
            return _TaskFolder(self.obj.GetFolder(path))

    def new_task(self) -> _TaskDefinition:
        with _com_call("ITaskService::NewTask"):
            return _TaskDefinition(self.obj.NewTask(0))


class WinregTable:
    """One ``HKEY_CLASSES_ROOT`` subtree, e.g. ``CLSID`` or ``Interface``."""

    def __init__(self, name: str) -> None:
        self._key = winreg.OpenKey(winreg.HKEY_CLASSES_ROOT, name)

    def keys(self) -> Iterator[str]:
        i = 0
        while True:
            try:
                name = winreg.EnumKey(self._key, i)
            except OSError as e:
                if getattr(e, "winerror", None) == _ERROR_NO_MORE_ITEMS:
                    return
                raise
            yield name
            i += 1

    def default_value(self, key: str) -> str:
        with winreg.OpenKey(self._key, key) as sub:
            try:
                value, _kind = winreg.QueryValueEx(sub, "")
            except FileNotFoundError:
                return ""
        return value if isinstance(value, str) else ""

    def close(self) -> None:
        winreg.CloseKey(self._key)


class Win32Backend:
    def initialize_runtime(self) -> int:
        with _com_call("CoInitializeEx"):
            pythoncom.CoInitializeEx(pythoncom.COINIT_MULTITHREADED)
        # pythoncom maps S_FALSE (already initialized) to a plain return.
        return S_OK

    def initialize_security(self) -> None:
        with _com_call("CoInitializeSecurity"):
            pythoncom.CoInitializeSecurity(
                None,
                None,
                None,
                RPC_C_AUTHN_LEVEL_PKT_PRIVACY,
                RPC_C_IMP_LEVEL_IMPERSONATE,
                None,
                EOAC_NONE,
                None,
            )

    def uninitialize_runtime(self) -> None:
        pythoncom.CoUninitialize()

    def open_registration_table(self, name: str) -> WinregTable:
        return WinregTable(name)

    def create_service(self, clsid: Guid, iid: Guid) -> _TaskService:
        with _com_call("CoCreateInstance"):
            unknown = pythoncom.CoCreateInstance(
                pywintypes.IID(str(clsid)),
                None,
                pythoncom.CLSCTX_ALL,
                pythoncom.IID_IUnknown,
            )
            # The resolved interface has no pythoncom wrapper; ITaskService is
            # a dual interface, so drive it through IDispatch.
            dispatch = unknown.QueryInterface(
                pywintypes.IID(str(iid)), pythoncom.IID_IDispatch
            )
            service = gencache.EnsureDispatch(dispatch)
        return _TaskService(service)
