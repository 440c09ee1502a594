"""In-memory stand-ins for the registry and the Task Scheduler COM layer."""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterator

import pytest

from schtask.guid import Guid
from schtask.native.base import S_OK, ComCallError

TASK_SCHEDULER_CLSID = "{0F87369F-A4E5-4CFC-BD3E-73E6154572DD}"
TASK_SERVICE_IID = "{2FABA4C7-4DA9-4013-9697-20CC3FD40F85}"
E_ACCESSDENIED = 0x80070005
ERROR_FILE_NOT_FOUND = 0x80070002


def healthy_tables() -> dict[str, list[tuple[str, Any]]]:
    return {
        "CLSID": [
            ("{00000000-0000-0000-C000-000000000046}", "PSFactoryBuffer"),
            ("{0000031A-0000-0000-C000-000000000046}", None),
            (TASK_SCHEDULER_CLSID, "TaskScheduler class"),
            ("{FFFFFFFF-0000-0000-0000-000000000001}", "TaskScheduler duplicate"),
        ],
        "Interface": [
            ("{00020400-0000-0000-C000-000000000046}", "IDispatch"),
            (TASK_SERVICE_IID, "ITaskService"),
        ],
    }


class FakeTable:
    def __init__(self, entries: list[tuple[str, Any]]) -> None:
        self._entries = entries
        self.closed = False

    def keys(self) -> Iterator[str]:
        for key, _value in self._entries:
            yield key

    def default_value(self, key: str) -> str:
        for k, value in self._entries:
            if k == key:
                if isinstance(value, BaseException):
                    raise value
                return value if isinstance(value, str) else ""
        raise FileNotFoundError(key)

    def close(self) -> None:
        self.closed = True


class FakeRegistry:
    def __init__(self, tables: dict[str, Any] | None = None) -> None:
        self.tables = healthy_tables() if tables is None else tables
        self.opened: list[FakeTable] = []

    def open_registration_table(self, name: str) -> FakeTable:
        entries = self.tables.get(name)
        if entries is None:
            raise FileNotFoundError(f"registry key {name} not found")
        table = FakeTable(entries)
        self.opened.append(table)
        return table


class FakeHandle:
    kind = "handle"

    def __init__(self, backend: FakeBackend) -> None:
        self.backend = backend
        self.released = False
        backend.acquired[self.kind] += 1

    def _op(self, name: str) -> None:
        assert not self.released, f"{self.kind} used after release"
        self.backend.maybe_fail(name)

    def release(self) -> None:
        assert not self.released, f"{self.kind} released twice"
        self.released = True
        self.backend.released[self.kind] += 1


class FakeRegistrationInfo(FakeHandle):
    kind = "registration_info"

    def __init__(self, backend: FakeBackend, state: dict[str, Any]) -> None:
        super().__init__(backend)
        self.state = state

    def set_author(self, author: str) -> None:
        self._op("set_author")
        self.state["author"] = author


class FakeSettings(FakeHandle):
    kind = "settings"

    def __init__(self, backend: FakeBackend, state: dict[str, Any]) -> None:
        super().__init__(backend)
        self.state = state

    def set_start_when_available(self, value: bool) -> None:
        self._op("set_start_when_available")
        self.state["start_when_available"] = value


class FakeLogonTrigger(FakeHandle):
    kind = "logon_trigger"

    def __init__(self, backend: FakeBackend, state: dict[str, Any]) -> None:
        super().__init__(backend)
        self.state = state

    def set_id(self, trigger_id: str) -> None:
        self._op("set_id")
        self.state["id"] = trigger_id

    def set_start_boundary(self, boundary: str) -> None:
        self._op("set_start_boundary")
        self.state["start_boundary"] = boundary

    def set_end_boundary(self, boundary: str) -> None:
        self._op("set_end_boundary")
        self.state["end_boundary"] = boundary

    def set_user_id(self, user_id: str) -> None:
        self._op("set_user_id")
        self.state["user_id"] = user_id


class FakeTrigger(FakeHandle):
    kind = "trigger"

    def __init__(self, backend: FakeBackend, state: dict[str, Any]) -> None:
        super().__init__(backend)
        self.state = state

    def query_logon_trigger(self) -> FakeLogonTrigger:
        self._op("query_logon_trigger")
        return FakeLogonTrigger(self.backend, self.state)


class FakeTriggerCollection(FakeHandle):
    kind = "trigger_collection"

    def __init__(self, backend: FakeBackend, items: list[dict[str, Any]]) -> None:
        super().__init__(backend)
        self.items = items

    def create(self, trigger_type: int) -> FakeTrigger:
        self._op("trigger_create")
        state: dict[str, Any] = {"type": trigger_type}
        self.items.append(state)
        return FakeTrigger(self.backend, state)


class FakeExecAction(FakeHandle):
    kind = "exec_action"

    def __init__(self, backend: FakeBackend, state: dict[str, Any]) -> None:
        super().__init__(backend)
        self.state = state

    def set_path(self, path: str) -> None:
        self._op("set_path")
        self.state["path"] = path

    def set_arguments(self, arguments: str) -> None:
        self._op("set_arguments")
        self.state["arguments"] = arguments


class FakeAction(FakeHandle):
    kind = "action"

    def __init__(self, backend: FakeBackend, state: dict[str, Any]) -> None:
        super().__init__(backend)
        self.state = state

    def query_exec_action(self) -> FakeExecAction:
        self._op("query_exec_action")
        return FakeExecAction(self.backend, self.state)


class FakeActionCollection(FakeHandle):
    kind = "action_collection"

    def __init__(self, backend: FakeBackend, items: list[dict[str, Any]]) -> None:
        super().__init__(backend)
        self.items = items

    def create(self, action_type: int) -> FakeAction:
        self._op("action_create")
        state: dict[str, Any] = {"type": action_type}
        self.items.append(state)
        return FakeAction(self.backend, state)


class FakeDefinition(FakeHandle):
    kind = "definition"

    def __init__(self, backend: FakeBackend) -> None:
        super().__init__(backend)
        self.state: dict[str, Any] = {"triggers": [], "actions": []}

    def registration_info(self) -> FakeRegistrationInfo:
        self._op("registration_info")
        return FakeRegistrationInfo(self.backend, self.state)

    def settings(self) -> FakeSettings:
        self._op("settings")
        return FakeSettings(self.backend, self.state)

    def triggers(self) -> FakeTriggerCollection:
        self._op("triggers")
        return FakeTriggerCollection(self.backend, self.state["triggers"])

    def actions(self) -> FakeActionCollection:
        self._op("actions")
        return FakeActionCollection(self.backend, self.state["actions"])


class FakeRegisteredTask(FakeHandle):
    kind = "registered_task"


class FakeFolder(FakeHandle):
    kind = "root_folder"

    def __init__(self, backend: FakeBackend, path: str) -> None:
        super().__init__(backend)
        self.path = path

    def delete_task(self, name: str) -> None:
        self._op("delete_task")
        if name not in self.backend.store:
            raise ComCallError(ERROR_FILE_NOT_FOUND)
        del self.backend.store[name]
        self.backend.deleted.append(name)

    def register_task_definition(
        self,
        name: str,
        definition: FakeDefinition,
        *,
        flags: int,
        logon_type: int,
    ) -> FakeRegisteredTask | None:
        self._op("register")
        assert not definition.released
        self.backend.store[name] = dict(
            definition.state, flags=flags, logon_type=logon_type, folder=self.path
        )
        if self.backend.register_returns_none:
            return None
        return FakeRegisteredTask(self.backend)


class FakeService(FakeHandle):
    kind = "service"

    def __init__(self, backend: FakeBackend) -> None:
        super().__init__(backend)
        self.connected = False

    def connect(self) -> None:
        self._op("connect")
        self.connected = True

    def get_folder(self, path: str) -> FakeFolder:
        self._op("get_folder")
        assert self.connected
        return FakeFolder(self.backend, path)

    def new_task(self) -> FakeDefinition:
        self._op("new_task")
        return FakeDefinition(self.backend)


class FakeBackend(FakeRegistry):
    """Counts acquire/release per handle kind; ``fail`` maps call name -> HRESULT."""

    def __init__(
        self,
        tables: dict[str, Any] | None = None,
        store: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(tables)
        self.store: dict[str, dict[str, Any]] = {} if store is None else store
        self.acquired: Counter[str] = Counter()
        self.released: Counter[str] = Counter()
        self.fail: dict[str, int] = {}
        self.deleted: list[str] = []
        self.created_with: list[tuple[Guid, Guid]] = []
        self.runtime_status = S_OK
        self.runtime_error: int | None = None
        self.security_error: int | None = None
        self.runtime_active = 0
        self.init_calls = 0
        self.uninit_calls = 0
        self.register_returns_none = False

    def maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise ComCallError(self.fail[name])

    def initialize_runtime(self) -> int:
        self.init_calls += 1
        if self.runtime_error is not None:
            raise ComCallError(self.runtime_error)
        self.runtime_active += 1
        return self.runtime_status

    def initialize_security(self) -> None:
        assert self.runtime_active > 0
        if self.security_error is not None:
            raise ComCallError(self.security_error)

    def uninitialize_runtime(self) -> None:
        self.uninit_calls += 1
        self.runtime_active -= 1

    def create_service(self, clsid: Guid, iid: Guid) -> FakeService:
        assert self.runtime_active > 0
        self.maybe_fail("create_service")
        self.created_with.append((clsid, iid))
        return FakeService(self)

    def leaked(self) -> dict[str, int]:
        kinds = set(self.acquired) | set(self.released)
        return {
            k: self.acquired[k] - self.released[k]
            for k in kinds
            if self.acquired[k] != self.released[k]
        }


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def environ() -> dict[str, str]:
    return {"USERDOMAIN": "CONTOSO", "USERNAME": "alice"}
