"""
PVE-Inventory: Import Proxmox VE inventory into external systems.

This package logs in to the Proxmox VE API and lists virtual machines,
host nodes and resource pools as flat records keyed by name, ready for
an inventory import such as Icinga Director.
"""

__version__ = "0.1.0"
