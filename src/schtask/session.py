from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from schtask.errors import RuntimeInitError, SecurityInitError
from schtask.native.base import RPC_E_TOO_LATE, S_FALSE, ComCallError, SchedulerBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def automation_session(backend: SchedulerBackend) -> Iterator[SchedulerBackend]:
    """Hold the process COM runtime (MTA + call security) for one operation.

    The runtime is torn down on every exit path once it was initialized.
    Not reentrant: callers creating tasks from several threads must serialize.
    """

    try:
        status = backend.initialize_runtime()
    except ComCallError as e:
        raise RuntimeInitError(e.hresult) from e
    if status == S_FALSE:
        logger.debug("COM runtime already initialized on this thread")

    try:
        try:
            backend.initialize_security()
        except ComCallError as e:
            if e.hresult != RPC_E_TOO_LATE:
                raise SecurityInitError(e.hresult) from e
            logger.debug("COM security already configured for this process")
        yield backend
    finally:
        backend.uninitialize_runtime()


def with_session(backend: SchedulerBackend, body: Callable[[SchedulerBackend], T]) -> T:
    with automation_session(backend) as b:
        return body(b)
