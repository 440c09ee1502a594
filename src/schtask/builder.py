"""Build a logon-triggered task definition through the scheduler object model.

Each step depends on objects acquired by earlier steps. Every acquired COM
handle goes into a :class:`HandleChain`; on failure the chain is unwound so
exactly the handles still alive are released, newest first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, TypeVar

from schtask.errors import Stage, StageError
from schtask.models import (
    AUTHOR_PLACEHOLDER,
    ROOT_FOLDER,
    LogonTriggerSpec,
    ServiceIdentifiers,
    TaskSpec,
)
from schtask.native.base import (
    TASK_ACTION_EXEC,
    TASK_TRIGGER_LOGON,
    ComCallError,
    Handle,
    SchedulerBackend,
    TaskDefinition,
    TaskFolder,
)

logger = logging.getLogger(__name__)

H = TypeVar("H", bound=Handle)
R = TypeVar("R")


class HandleChain:
    """Ordered set of live handles owned by a single build."""

    def __init__(self) -> None:
        self._live: list[tuple[str, Handle]] = []

    def acquire(self, kind: str, handle: H) -> H:
        self._live.append((kind, handle))
        return handle

    def release(self, handle: Handle) -> None:
        for i, (kind, h) in enumerate(self._live):
            if h is handle:
                del self._live[i]
                logger.debug(f"release {kind}")
                h.release()
                return
        raise ValueError("handle is not owned by this chain")

    def unwind(self) -> None:
        while self._live:
            kind, h = self._live.pop()
            logger.debug(f"release {kind}")
            try:
                h.release()
            except Exception as e:
                logger.warning(f"releasing {kind} failed: {e}")

    def kinds(self) -> list[str]:
        return [kind for kind, _h in self._live]

    def __len__(self) -> int:
        return len(self._live)


@dataclass
class BuiltTask:
    folder: TaskFolder
    definition: TaskDefinition
    chain: HandleChain


def _call(stage: Stage, message: str, fn: Callable[..., R], *args: object) -> R:
    try:
        return fn(*args)
    except ComCallError as e:
        logger.debug(f"{message} (stage {int(stage)}): {e}")
        raise StageError(stage, message, e.hresult) from e


class TaskBuilder:
    def __init__(
        self,
        backend: SchedulerBackend,
        identifiers: ServiceIdentifiers,
        spec: TaskSpec,
        *,
        trigger: LogonTriggerSpec | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._backend = backend
        self._ids = identifiers
        self._spec = spec
        self._trigger = trigger or LogonTriggerSpec.for_user(environ)

    def build(self) -> BuiltTask:
        """Return the root folder and the configured, uncommitted definition.

        Raises StageError; nothing acquired by this call is left alive then.
        """

        chain = HandleChain()
        try:
            return self._build(chain)
        except BaseException:
            chain.unwind()
            raise

    def _build(self, chain: HandleChain) -> BuiltTask:
        spec = self._spec
        ids = self._ids

        service = chain.acquire(
            "service",
            _call(
                Stage.CREATE_SERVICE,
                "Failed to create an instance of ITaskService",
                self._backend.create_service,
                ids.service_class_id,
                ids.service_interface_id,
            ),
        )
        _call(Stage.CONNECT, "ITaskService::Connect failed", service.connect)

        folder = chain.acquire(
            "root_folder",
            _call(
                Stage.GET_ROOT_FOLDER,
                "Cannot get Root Folder pointer",
                service.get_folder,
                ROOT_FOLDER,
            ),
        )

        try:
            folder.delete_task(spec.name)
            logger.info(f"Removed existing task {spec.name!r}")
        except ComCallError as e:
            logger.debug(f"No existing task {spec.name!r} removed: {e}")

        try:
            definition = _call(
                Stage.NEW_DEFINITION,
                "Failed to create a task definition",
                service.new_task,
            )
        finally:
            # Nothing after this point needs the service.
            chain.release(service)
        chain.acquire("definition", definition)

        reg_info = chain.acquire(
            "registration_info",
            _call(
                Stage.REGISTRATION_INFO,
                "Cannot get identification pointer",
                definition.registration_info,
            ),
        )
        _call(
            Stage.REGISTRATION_INFO,
            "Cannot put identification info",
            reg_info.set_author,
            AUTHOR_PLACEHOLDER,
        )
        chain.release(reg_info)

        settings = chain.acquire(
            "settings",
            _call(Stage.SETTINGS, "Cannot get settings pointer", definition.settings),
        )
        _call(
            Stage.SETTINGS,
            "Cannot put setting info",
            settings.set_start_when_available,
            True,
        )
        chain.release(settings)

        self._add_logon_trigger(chain, definition)
        self._add_exec_action(chain, definition)

        logger.debug(f"Task definition for {spec.name!r} built")
        return BuiltTask(folder=folder, definition=definition, chain=chain)

    def _add_logon_trigger(self, chain: HandleChain, definition: TaskDefinition) -> None:
        t = self._trigger

        collection = chain.acquire(
            "trigger_collection",
            _call(
                Stage.CREATE_TRIGGER,
                "Cannot get trigger collection",
                definition.triggers,
            ),
        )
        trigger = chain.acquire(
            "trigger",
            _call(
                Stage.CREATE_TRIGGER,
                "Cannot create the trigger",
                collection.create,
                TASK_TRIGGER_LOGON,
            ),
        )
        chain.release(collection)

        logon = chain.acquire(
            "logon_trigger",
            _call(
                Stage.QUERY_LOGON_TRIGGER,
                "QueryInterface call failed for ILogonTrigger",
                trigger.query_logon_trigger,
            ),
        )
        chain.release(trigger)

        stage = Stage.CONFIGURE_LOGON_TRIGGER
        _call(stage, "Cannot put the trigger ID", logon.set_id, t.id)
        _call(stage, "Cannot put the start boundary", logon.set_start_boundary, t.start_boundary)
        _call(stage, "Cannot put the end boundary", logon.set_end_boundary, t.end_boundary)
        _call(stage, "Cannot add user ID to logon trigger", logon.set_user_id, t.user_id)
        chain.release(logon)

    def _add_exec_action(self, chain: HandleChain, definition: TaskDefinition) -> None:
        spec = self._spec

        collection = chain.acquire(
            "action_collection",
            _call(
                Stage.CREATE_ACTION,
                "Cannot get Task collection pointer",
                definition.actions,
            ),
        )
        action = chain.acquire(
            "action",
            _call(
                Stage.CREATE_ACTION,
                "Cannot create the action",
                collection.create,
                TASK_ACTION_EXEC,
            ),
        )
        chain.release(collection)

        exec_action = chain.acquire(
            "exec_action",
            _call(
                Stage.QUERY_EXEC_ACTION,
                "QueryInterface call failed for IExecAction",
                action.query_exec_action,
            ),
        )
        chain.release(action)

        stage = Stage.CONFIGURE_EXEC_ACTION
        _call(stage, "Cannot set path of executable", exec_action.set_path, spec.executable_path)
        if spec.arguments is not None:
            _call(stage, "Cannot set arguments", exec_action.set_arguments, spec.arguments)
        chain.release(exec_action)
