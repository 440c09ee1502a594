"""Public entry point: create a logon-triggered scheduled task."""

from __future__ import annotations

import logging
from typing import Mapping

from schtask.builder import TaskBuilder
from schtask.committer import commit
from schtask.config import Settings
from schtask.errors import TaskSchedulerError
from schtask.models import ServiceIdentifiers, TaskSpec
from schtask.native.base import SchedulerBackend
from schtask.registry import resolve_service_identifiers
from schtask.session import automation_session

logger = logging.getLogger(__name__)


def default_backend() -> SchedulerBackend:
    # Imported lazily: pywin32 only exists on Windows.
    from schtask.native.win32 import Win32Backend

    return Win32Backend()


def resolve_identifiers(
    *,
    backend: SchedulerBackend | None = None,
    settings: Settings | None = None,
) -> ServiceIdentifiers:
    b = backend or default_backend()
    s = settings or Settings.from_env()
    with automation_session(b):
        return resolve_service_identifiers(
            b, s.class_description, s.interface_description
        )


def register_logon_task(
    spec: TaskSpec,
    *,
    backend: SchedulerBackend | None = None,
    settings: Settings | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Typed variant of :func:`create_task`; raises TaskSchedulerError."""

    b = backend or default_backend()
    s = settings or Settings.from_env()
    with automation_session(b):
        ids = resolve_service_identifiers(
            b, s.class_description, s.interface_description
        )
        built = TaskBuilder(b, ids, spec, environ=environ).build()
        return commit(built, spec.name)


def create_task(
    task_name: str,
    task_path: str,
    arguments: str | None = None,
    *,
    backend: SchedulerBackend | None = None,
    settings: Settings | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Create (or replace) a task that runs ``task_path`` at user logon.

    Always returns text: ``"Task successfully created"`` or a description of
    the failing step including the HRESULT in hex.
    """

    spec = TaskSpec(name=task_name, executable_path=task_path, arguments=arguments)
    try:
        return register_logon_task(
            spec, backend=backend, settings=settings, environ=environ
        )
    except TaskSchedulerError as e:
        logger.error(f"Creating task {task_name!r} failed: {e}")
        return str(e)
    except Exception as e:
        logger.error(f"Unexpected error creating task {task_name!r}: {e}", exc_info=True)
        return f"Unexpected error: {e}"
