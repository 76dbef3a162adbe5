# Scanner module
from .address_range import expand_cidr, expand_range, is_private_network
from .models import ScanRequest, ScanResult, ScanSettings, ScanState, ScanSummary
from .neighbor_table import default_neighbor_table
from .orchestrator import ScanOrchestrator, ScanRun
from .oui_lookup import VendorDatabase
from .probe import ProbeExecutor, create_prober
from .topology import LocalTopologyResolver

__all__ = [
    "expand_cidr", "expand_range", "is_private_network",
    "ScanRequest", "ScanResult", "ScanSettings", "ScanState", "ScanSummary",
    "default_neighbor_table", "ScanOrchestrator", "ScanRun", "VendorDatabase",
    "ProbeExecutor", "create_prober", "LocalTopologyResolver",
]
