"""
Data models for the PVE session, call outcomes, and inventory records.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# PVE tickets are accepted for two hours after issuance.
TICKET_LIFETIME = timedelta(hours=2)


class Scheme(str, Enum):
    """
    Transport used to talk to the PVE API.
    """

    HTTPS = "HTTPS"
    HTTP = "HTTP"


class Realm(str, Enum):
    """
    Authentication backend the user belongs to.
    """

    PAM = "pam"
    PVE = "pve"


class ObjectType(str, Enum):
    """
    Kind of object an import fetches.
    """

    VIRTUAL_MACHINE = "VirtualMachine"
    HOST_SYSTEM = "HostSystem"
    POOLS = "Pools"


class Outcome(str, Enum):
    """
    Result classification for API calls and listings.
    """

    OK = "ok"
    PARTIAL = "partial"
    NOT_AUTHENTICATED = "not_authenticated"
    TRANSPORT_ERROR = "transport_error"
    API_ERROR = "api_error"


class Session(BaseModel):
    """
    An authenticated PVE session.

    Sessions are never mutated; the client replaces the whole value on
    login and drops it on logout or expiry.
    """

    model_config = ConfigDict(frozen=True)

    ticket: str
    csrf_token: str
    issued_at: datetime
    username: Optional[str] = None

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + TICKET_LIFETIME

    def is_valid(self, now: datetime) -> bool:
        """
        True while `now` is strictly before the expiry time.
        """
        return now < self.expires_at


class ApiResult(BaseModel):
    """
    Outcome of a single API call.
    """

    outcome: Outcome
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK


class ListingResult(BaseModel):
    """
    Outcome of a listing, holding flat records ready for import.
    """

    outcome: Outcome
    records: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK

    @property
    def is_empty(self) -> bool:
        """
        True for a successful listing that produced nothing.
        """
        return self.ok and not self.records


class NodeRecord(BaseModel):
    """
    A cluster node. Metrics reported by the API are kept as `host_*` extras.
    """

    model_config = ConfigDict(extra="allow")

    host_name: str
    host_status: str = "unknown"

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class PoolRecord(BaseModel):
    """
    A resource pool. Unknown API fields are kept as `pool_*` extras.
    """

    model_config = ConfigDict(extra="allow")

    pool_name: str
    pool_comment: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class GuestInterface(BaseModel):
    """
    A network interface as reported by the QEMU guest agent.
    """

    name: str
    hardware_address: Optional[str] = None
    ip_addresses: list[str] = Field(default_factory=list)


class VmRecord(BaseModel):
    """
    A QEMU virtual machine.

    Enrichment fields stay unset until their call succeeds, so `to_row()`
    leaves them out entirely instead of reporting them as empty.
    """

    vm_name: str
    vm_id: int
    vm_host: str
    vm_status: str
    vm_template: bool = False
    vm_tags: list[str] = Field(default_factory=list)
    vm_uptime: Optional[int] = None
    hardware_cpu: Optional[int] = None
    hardware_memory: Optional[int] = None  # MB
    hardware_disk: Optional[float] = None  # GB
    # Guest agent
    guest_network: Optional[list[GuestInterface]] = None
    guest_ip_addresses: Optional[list[str]] = None
    # VM configuration
    vm_description: Optional[str] = None
    vm_os_type: Optional[str] = None
    # HA manager
    vm_ha_state: Optional[str] = None
    vm_ha_group: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump(exclude_unset=True)
        # interfaces always carry every key
        if self.guest_network is not None and "guest_network" in row:
            row["guest_network"] = [iface.model_dump() for iface in self.guest_network]
        return row
