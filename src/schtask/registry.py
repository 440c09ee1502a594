"""Find the Task Scheduler CLSID and IID by scanning the registry.

Nothing is hardcoded: ``HKCR\\CLSID`` and ``HKCR\\Interface`` are walked
entry by entry and the first key whose default value contains the wanted
description wins. Enumeration order is whatever the registry yields.
"""

from __future__ import annotations

import logging
from contextlib import closing

from schtask.errors import GuidFormatError, IdentifierLookupError
from schtask.guid import parse_guid
from schtask.models import ServiceIdentifiers
from schtask.native.base import (
    CLASS_TABLE,
    INTERFACE_TABLE,
    RegistrationDatabase,
    RegistrationTable,
)

logger = logging.getLogger(__name__)


def find_first_match(table: RegistrationTable, needle: str) -> str | None:
    """Return the first key name whose default value contains ``needle``.

    Raises OSError when an entry cannot be opened.
    """

    for key in table.keys():
        if needle in (table.default_value(key) or ""):
            return key
    return None


def _scan(db: RegistrationDatabase, table_name: str, needle: str, label: str) -> str | None:
    try:
        with closing(db.open_registration_table(table_name)) as table:
            return find_first_match(table, needle)
    except OSError as e:
        raise IdentifierLookupError(f"{needle} {label} lookup failed: {e}") from e


def resolve_service_identifiers(
    db: RegistrationDatabase,
    class_description: str = "TaskScheduler",
    interface_description: str = "ITaskService",
) -> ServiceIdentifiers:
    clsid_text = _scan(db, CLASS_TABLE, class_description, "CLSID")
    if clsid_text is None:
        raise IdentifierLookupError(f"{class_description} CLSID not found")

    iid_text = _scan(db, INTERFACE_TABLE, interface_description, "IID")
    if iid_text is None:
        raise IdentifierLookupError(f"{interface_description} IID not found")

    try:
        ids = ServiceIdentifiers(
            service_class_id=parse_guid(clsid_text),
            service_interface_id=parse_guid(iid_text),
        )
    except GuidFormatError as e:
        raise IdentifierLookupError(e.message, format_error=True) from e

    logger.info(
        f"Resolved {class_description} CLSID {ids.service_class_id} "
        f"and {interface_description} IID {ids.service_interface_id}"
    )
    return ids
