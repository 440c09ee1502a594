from __future__ import annotations

import logging

from schtask.builder import BuiltTask
from schtask.errors import CommitError
from schtask.models import SUCCESS_MESSAGE
from schtask.native.base import (
    TASK_CREATE_OR_UPDATE,
    TASK_LOGON_INTERACTIVE_TOKEN,
    ComCallError,
)

logger = logging.getLogger(__name__)


def commit(built: BuiltTask, task_name: str) -> str:
    """Register ``built.definition`` under ``task_name``, replacing any prior one.

    The task runs with the interactive logon token of the current user, so no
    credentials are stored. All handles in ``built.chain`` are released
    whether or not registration succeeds.
    """

    chain = built.chain
    try:
        try:
            registered = built.folder.register_task_definition(
                task_name,
                built.definition,
                flags=TASK_CREATE_OR_UPDATE,
                logon_type=TASK_LOGON_INTERACTIVE_TOKEN,
            )
        except ComCallError as e:
            logger.debug(f"Registering task {task_name!r} failed: {e}")
            raise CommitError(e.hresult) from e
        if registered is not None:
            chain.acquire("registered_task", registered)
    finally:
        chain.unwind()

    logger.info(f"Task {task_name!r} registered")
    return SUCCESS_MESSAGE
