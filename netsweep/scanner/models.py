from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .oui_lookup import describe_vendor


class ProbeStatus:
    """Status labels recorded on a ScanResult."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"

    @staticmethod
    def error(detail: str) -> str:
        return f"error: {detail}"


class ScanState(str, Enum):
    """Lifecycle of a single scan run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAILED)


@dataclass(frozen=True)
class ScanSettings:
    """Options recognized by a scan invocation."""
    timeout_ms: int = 1000
    max_concurrent_probes: int = 50
    resolve_hostnames: bool = True
    resolve_vendor: bool = True
    user_authorized: bool = False

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.max_concurrent_probes < 1:
            raise ValueError("max_concurrent_probes must be at least 1")


@dataclass(frozen=True)
class ScanRequest:
    """
    What to scan and how.

    Either ``start`` and ``end`` (an inclusive address range) or ``cidr``
    must be given, not both.
    """
    start: Optional[str] = None
    end: Optional[str] = None
    cidr: Optional[str] = None
    settings: ScanSettings = field(default_factory=ScanSettings)
    label: Optional[str] = None

    def __post_init__(self):
        has_range = self.start is not None or self.end is not None
        if self.cidr is not None and has_range:
            raise ValueError("Give either a start/end pair or a CIDR literal, not both")
        if self.cidr is None and (self.start is None or self.end is None):
            raise ValueError("A scan needs both start and end addresses, or a CIDR literal")

    @classmethod
    def for_range(cls, start: str, end: str, settings: ScanSettings = None) -> "ScanRequest":
        return cls(start=start, end=end, settings=settings or ScanSettings())

    @classmethod
    def for_cidr(cls, cidr: str, settings: ScanSettings = None, label: str = None) -> "ScanRequest":
        return cls(cidr=cidr, settings=settings or ScanSettings(), label=label)

    @property
    def target_description(self) -> str:
        if self.label:
            return self.label
        if self.cidr is not None:
            return self.cidr
        return f"{self.start} - {self.end}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ScanResult:
    """Outcome of probing one address."""
    address: str
    reachable: bool
    latency_ms: int = -1  # -1 when unreachable
    status: str = ProbeStatus.TIMEOUT
    hostname: Optional[str] = None
    mac_address: Optional[str] = None
    vendor: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def latency_display(self) -> str:
        return f"{self.latency_ms} ms" if self.reachable else "—"

    @property
    def mac_display(self) -> str:
        return self.mac_address or "—"

    @property
    def vendor_display(self) -> str:
        return describe_vendor(self.mac_address, self.vendor)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["vendor_display"] = self.vendor_display
        return data


@dataclass
class ScanSummary:
    """Post-scan record handed to a history sink."""
    target: str
    state: ScanState
    total_addresses: int
    total_scanned: int
    online: int
    offline: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == ScanState.COMPLETED and self.online > 0

    @property
    def headline(self) -> str:
        return f"Found {self.online} online hosts out of {self.total_scanned} scanned"

    @property
    def details(self) -> str:
        lines = [
            f"Target: {self.target}",
            f"State: {self.state.value}",
            f"Total Scanned: {self.total_scanned}/{self.total_addresses}",
            f"Online: {self.online}",
            f"Offline: {self.offline}",
        ]
        if self.started_at and self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()
            lines.append(f"Scan Duration: {duration:.1f}s")
        if self.error:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines)
