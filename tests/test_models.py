"""
Tests for data models.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from pve_inventory.models import (
    GuestInterface,
    ListingResult,
    NodeRecord,
    ObjectType,
    Outcome,
    PoolRecord,
    Session,
    TICKET_LIFETIME,
    VmRecord,
)

ISSUED = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestSession:
    def test_expires_two_hours_after_issue(self):
        session = Session(ticket="t", csrf_token="c", issued_at=ISSUED)
        assert TICKET_LIFETIME == timedelta(hours=2)
        assert session.expires_at == datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)

    def test_validity_window(self):
        session = Session(ticket="t", csrf_token="c", issued_at=ISSUED)
        assert session.is_valid(ISSUED)
        assert session.is_valid(ISSUED + timedelta(hours=1, minutes=59, seconds=59))
        assert not session.is_valid(ISSUED + timedelta(hours=2))
        assert not session.is_valid(ISSUED + timedelta(days=1))

    def test_session_is_frozen(self):
        session = Session(ticket="t", csrf_token="c", issued_at=ISSUED)
        with pytest.raises(ValidationError):
            session.ticket = "other"


class TestVmRecord:
    def _vm(self):
        return VmRecord(
            vm_name="web",
            vm_id=100,
            vm_host="pve1",
            vm_status="running",
            hardware_cpu=2,
        )

    def test_row_without_enrichment(self):
        row = self._vm().to_row()
        assert row == {
            "vm_name": "web",
            "vm_id": 100,
            "vm_host": "pve1",
            "vm_status": "running",
            "hardware_cpu": 2,
        }

    def test_enrichment_fields_appear_once_set(self):
        vm = self._vm()
        vm.vm_description = None
        vm.guest_network = [GuestInterface(name="eth0", ip_addresses=["10.0.0.5"])]

        row = vm.to_row()

        assert row["vm_description"] is None
        assert row["guest_network"] == [
            {"name": "eth0", "hardware_address": None, "ip_addresses": ["10.0.0.5"]}
        ]
        assert "vm_ha_state" not in row


class TestNodeAndPoolRecords:
    def test_node_extras(self):
        node = NodeRecord(host_name="pve1", host_status="online", host_cpu=0.25, host_uptime=60)
        assert node.to_row() == {
            "host_name": "pve1",
            "host_status": "online",
            "host_cpu": 0.25,
            "host_uptime": 60,
        }

    def test_pool_defaults(self):
        assert PoolRecord(pool_name="lab").to_row() == {"pool_name": "lab", "pool_comment": None}


class TestListingResult:
    def test_empty_only_when_ok(self):
        assert ListingResult(outcome=Outcome.OK).is_empty
        assert not ListingResult(outcome=Outcome.TRANSPORT_ERROR).is_empty
        assert not ListingResult(outcome=Outcome.OK, records=[{"pool_name": "x"}]).is_empty


class TestEnums:
    def test_object_type_values(self):
        assert ObjectType.VIRTUAL_MACHINE.value == "VirtualMachine"
        assert ObjectType.HOST_SYSTEM.value == "HostSystem"
        assert ObjectType.POOLS.value == "Pools"

    def test_outcome_values(self):
        assert Outcome.NOT_AUTHENTICATED.value == "not_authenticated"
        assert Outcome.TRANSPORT_ERROR.value == "transport_error"
