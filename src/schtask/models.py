from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from schtask.environment import current_user_id
from schtask.guid import Guid

ROOT_FOLDER = "\\"
AUTHOR_PLACEHOLDER = "Author Name"
TRIGGER_ID = "Trigger1"
# Fixed policy window for the logon trigger.
START_BOUNDARY = "2024-03-19T00:00:00"
END_BOUNDARY = "2026-06-06T00:00:00"

SUCCESS_MESSAGE = "Task successfully created"


@dataclass(frozen=True)
class ServiceIdentifiers:
    service_class_id: Guid
    service_interface_id: Guid


@dataclass(frozen=True)
class TaskSpec:
    name: str
    executable_path: str
    arguments: str | None = None


@dataclass(frozen=True)
class LogonTriggerSpec:
    id: str
    start_boundary: str
    end_boundary: str
    user_id: str

    @classmethod
    def for_user(cls, environ: Mapping[str, str] | None = None) -> LogonTriggerSpec:
        return cls(
            id=TRIGGER_ID,
            start_boundary=START_BOUNDARY,
            end_boundary=END_BOUNDARY,
            user_id=current_user_id(environ),
        )
