from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from typing import Optional


class ScanStartRequest(BaseModel):
    """Scan invocation: an address range, a CIDR subnet, or the local network."""
    start_ip: Optional[str] = None
    end_ip: Optional[str] = None
    subnet: Optional[str] = None
    local: bool = False
    timeout_ms: Optional[int] = Field(None, gt=0, le=60000)
    max_concurrent_probes: Optional[int] = Field(None, ge=1, le=1024)
    resolve_hostnames: Optional[bool] = None
    resolve_vendor: Optional[bool] = None
    user_authorized: bool = False

    @model_validator(mode="after")
    def check_target(self):
        targets = [self.local, self.subnet is not None, self.start_ip is not None or self.end_ip is not None]
        if sum(targets) != 1:
            raise ValueError("Give exactly one of: start_ip/end_ip, subnet, or local")
        if (self.start_ip is None) != (self.end_ip is None):
            raise ValueError("start_ip and end_ip must be given together")
        return self


class ScanTriggerResponse(BaseModel):
    """Scan trigger response schema."""
    success: bool
    message: str
    target: Optional[str] = None
    total_addresses: Optional[int] = None


class ScanStatusResponse(BaseModel):
    """Progress of the current (or last) scan."""
    state: str
    target: Optional[str] = None
    scanned: int
    total: int
    progress: int
    online: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ScanResultResponse(BaseModel):
    """One probed address."""
    model_config = ConfigDict(from_attributes=True)

    address: str
    reachable: bool
    latency_ms: int
    status: str
    hostname: Optional[str] = None
    mac_address: Optional[str] = None
    vendor: Optional[str] = None
    vendor_display: str
    timestamp: datetime


class ScanSessionResponse(BaseModel):
    """Scan session response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    target: str
    status: str
    is_success: bool
    total_addresses: int
    devices_scanned: int
    devices_online: int
    devices_offline: int
    summary: Optional[str] = None
    details: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class VendorResponse(BaseModel):
    """Vendor lookup result for a MAC address."""
    mac_address: str
    vendor: Optional[str] = None
    vendor_display: str
    locally_administered: bool
