"""
Inventory listings for nodes, pools and virtual machines.
"""

import logging
from typing import Any, Optional

from .api import PveClient
from .models import (
    ApiResult,
    GuestInterface,
    ListingResult,
    NodeRecord,
    Outcome,
    PoolRecord,
    VmRecord,
)

logger = logging.getLogger(__name__)


class PveInventory:
    """
    Builds flat inventory records from PVE API listings.

    All calls go through one PveClient, one at a time and in order.
    """

    def __init__(self, client: PveClient):
        self.client = client

    def _parse_tags(self, tags: Optional[str]) -> list[str]:
        """
        Parse PVE tags string to list.
        """
        if not tags:
            return []
        return [t.strip() for t in tags.replace(",", ";").split(";") if t.strip()]

    def _bytes_to_mb(self, bytes_val: Optional[int]) -> Optional[int]:
        if bytes_val is None:
            return None
        return bytes_val // (1024 * 1024)

    def _bytes_to_gb(self, bytes_val: Optional[int]) -> Optional[float]:
        if bytes_val is None:
            return None
        return round(bytes_val / (1024 * 1024 * 1024), 2)

    def _rows(self, result: ApiResult) -> list[dict[str, Any]]:
        if not isinstance(result.data, list):
            return []
        return [row for row in result.data if isinstance(row, dict)]

    def _failed(self, result: ApiResult, path: str) -> ListingResult:
        logger.warning("Listing %s failed (%s): %s", path, result.outcome.value, result.error)
        return ListingResult(outcome=result.outcome, errors=[f"{path}: {result.error}"])

    def _parse_node(self, node_data: dict[str, Any]) -> NodeRecord:
        fields = {f"host_{key}": value for key, value in node_data.items()}
        fields.pop("host_node", None)
        fields["host_name"] = node_data.get("node", "")
        fields["host_status"] = node_data.get("status", "unknown")
        return NodeRecord(**fields)

    def _parse_pool(self, pool_data: dict[str, Any]) -> PoolRecord:
        fields = {f"pool_{key}": value for key, value in pool_data.items()}
        fields.pop("pool_poolid", None)
        fields["pool_name"] = pool_data.get("poolid", "")
        fields["pool_comment"] = pool_data.get("comment")
        return PoolRecord(**fields)

    def list_nodes(self) -> ListingResult:
        """
        List cluster nodes with the metrics the API reports for them.

        Returns:
            ListingResult with one host record per node.
        """
        result = self.client.get("/nodes")
        if not result.ok:
            return self._failed(result, "/nodes")
        records = [self._parse_node(row).to_row() for row in self._rows(result)]
        return ListingResult(outcome=Outcome.OK, records=records)

    def list_pools(self) -> ListingResult:
        """
        List resource pools.

        Returns:
            ListingResult with one pool record per pool.
        """
        result = self.client.get("/pools")
        if not result.ok:
            return self._failed(result, "/pools")
        records = [self._parse_pool(row).to_row() for row in self._rows(result)]
        return ListingResult(outcome=Outcome.OK, records=records)

    def list_vms(
        self,
        guest_agent: bool = False,
        description: bool = False,
        ha_state: bool = False,
    ) -> ListingResult:
        """
        List QEMU virtual machines across all nodes.

        Each enrichment costs one extra call per VM. A failed enrichment
        leaves its fields out of the record; the record is still listed.

        Args:
            guest_agent: Fetch network interfaces from the QEMU guest agent.
            description: Fetch description and OS type from the VM config.
            ha_state: Fetch the HA manager state.

        Returns:
            ListingResult with one record per VM. Partial if some nodes
            could not be listed.
        """
        nodes = self.client.get("/nodes")
        if not nodes.ok:
            return self._failed(nodes, "/nodes")

        records = []
        errors = []
        failures = []
        node_names = [row.get("node") for row in self._rows(nodes) if row.get("node")]

        for node_name in node_names:
            path = f"/nodes/{node_name}/qemu"
            vm_list = self.client.get(path)
            if not vm_list.ok:
                logger.warning("Listing VMs on %s failed: %s", node_name, vm_list.error)
                errors.append(f"{path}: {vm_list.error}")
                failures.append(vm_list)
                continue

            for vm_data in self._rows(vm_list):
                vm = self._parse_vm(vm_data, node_name)
                if guest_agent:
                    self._add_guest_agent(vm)
                if description:
                    self._add_config(vm)
                if ha_state:
                    self._add_ha_state(vm)
                records.append(vm.to_row())

        if not failures:
            outcome = Outcome.OK
        elif len(failures) == len(node_names):
            outcome = failures[0].outcome
        else:
            outcome = Outcome.PARTIAL
        return ListingResult(outcome=outcome, records=records, errors=errors)

    def _parse_vm(self, vm_data: dict[str, Any], node_name: str) -> VmRecord:
        """
        Parse VM data from a node's qemu listing.
        """
        vmid = int(vm_data.get("vmid", 0))
        return VmRecord(
            vm_name=vm_data.get("name") or f"VM-{vmid}",
            vm_id=vmid,
            vm_host=node_name,
            vm_status=vm_data.get("status", "unknown"),
            vm_template=vm_data.get("template", 0) == 1,
            vm_tags=self._parse_tags(vm_data.get("tags")),
            vm_uptime=vm_data.get("uptime"),
            hardware_cpu=vm_data.get("cpus"),
            hardware_memory=self._bytes_to_mb(vm_data.get("maxmem")),
            hardware_disk=self._bytes_to_gb(vm_data.get("maxdisk")),
        )

    def _enrichment(self, vm: VmRecord, path: str) -> Optional[dict[str, Any]]:
        result = self.client.get(path)
        if not result.ok:
            logger.debug("Skipping %s for VM %s: %s", path, vm.vm_name, result.error)
            return None
        if not isinstance(result.data, dict):
            logger.debug("Unexpected payload from %s for VM %s", path, vm.vm_name)
            return None
        return result.data

    def _add_guest_agent(self, vm: VmRecord) -> None:
        """
        Add interfaces and routable addresses reported by the guest agent.
        """
        path = f"/nodes/{vm.vm_host}/qemu/{vm.vm_id}/agent/network-get-interfaces"
        agent_info = self._enrichment(vm, path)
        if agent_info is None:
            return

        interfaces = []
        ips = []
        for iface in agent_info.get("result") or []:
            if not isinstance(iface, dict):
                continue
            addresses = [
                ip_info.get("ip-address")
                for ip_info in iface.get("ip-addresses") or []
                if isinstance(ip_info, dict) and ip_info.get("ip-address")
            ]
            interfaces.append(GuestInterface(
                name=iface.get("name", ""),
                hardware_address=iface.get("hardware-address"),
                ip_addresses=addresses,
            ))
            for ip in addresses:
                if ip.startswith("127.") or ip.startswith("fe80") or ip == "::1":
                    continue
                ips.append(ip)

        vm.guest_network = interfaces
        vm.guest_ip_addresses = ips

    def _add_config(self, vm: VmRecord) -> None:
        config = self._enrichment(vm, f"/nodes/{vm.vm_host}/qemu/{vm.vm_id}/config")
        if config is None:
            return
        vm.vm_description = config.get("description")
        vm.vm_os_type = config.get("ostype")

    def _add_ha_state(self, vm: VmRecord) -> None:
        ha = self._enrichment(vm, f"/cluster/ha/resources/vm:{vm.vm_id}")
        if ha is None:
            return
        vm.vm_ha_state = ha.get("state")
        vm.vm_ha_group = ha.get("group")
