"""
Import-source operations: fetch one object type as key-unique flat records.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import httpx

from .api import PveClient
from .config import AppConfig
from .inventory import PveInventory
from .models import ListingResult, ObjectType, Outcome

logger = logging.getLogger(__name__)

KEY_COLUMNS = {
    ObjectType.VIRTUAL_MACHINE: "vm_name",
    ObjectType.HOST_SYSTEM: "host_name",
    ObjectType.POOLS: "pool_name",
}
DEFAULT_KEY_COLUMN = KEY_COLUMNS[ObjectType.VIRTUAL_MACHINE]


def _unique_by_key(result: ListingResult, key_column: str) -> ListingResult:
    """
    Drop records whose key was already seen, keeping the first one.
    """
    seen = set()
    records = []
    errors = list(result.errors)
    for record in result.records:
        key = record.get(key_column)
        if key in seen:
            logger.warning("Dropping record with duplicate %s %r", key_column, key)
            errors.append(f"Duplicate {key_column}: {key}")
            continue
        seen.add(key)
        records.append(record)

    outcome = result.outcome
    if len(records) < len(result.records) and outcome == Outcome.OK:
        outcome = Outcome.PARTIAL
    return ListingResult(outcome=outcome, records=records, errors=errors)


def fetch_data(
    config: AppConfig,
    transport: Optional[httpx.BaseTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> ListingResult:
    """
    Log in, fetch the configured object type, and log out again.

    Args:
        config: AppConfig with connection and import settings.
        transport: Optional httpx transport, mainly for tests.
        clock: Optional callable returning the current aware datetime.

    Returns:
        ListingResult whose records are unique by the object type's key column.
    """
    importer = config.importer
    with PveClient(config.pve, transport=transport, clock=clock) as client:
        login = client.login()
        if not login.ok:
            return ListingResult(outcome=login.outcome, errors=[f"Login failed: {login.error}"])

        inventory = PveInventory(client)
        if importer.object_type == ObjectType.VIRTUAL_MACHINE:
            result = inventory.list_vms(
                guest_agent=importer.vm_guest_agent,
                description=importer.vm_description,
                ha_state=importer.vm_ha,
            )
        elif importer.object_type == ObjectType.HOST_SYSTEM:
            result = inventory.list_nodes()
        else:
            result = inventory.list_pools()
        client.logout()

    logger.info(
        "Fetched %d %s record(s) from %s (%s)",
        len(result.records),
        importer.object_type.value,
        config.pve.host,
        result.outcome.value,
    )
    return _unique_by_key(result, KEY_COLUMNS[importer.object_type])


def list_columns(result: ListingResult) -> list[str]:
    """
    Column names of the first record, or an empty list.
    """
    if not result.records:
        return []
    return list(result.records[0].keys())


def key_column(config: AppConfig) -> str:
    """
    Name of the column that identifies records of the configured object type.
    """
    return KEY_COLUMNS.get(config.importer.object_type, DEFAULT_KEY_COLUMN)

