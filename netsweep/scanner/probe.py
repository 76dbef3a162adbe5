"""
Single-address reachability probes and per-host enrichment.

``ProbeExecutor.probe`` sends one ICMP echo through an ``EchoProber`` and,
for hosts that answer, optionally fills in hostname, MAC address and vendor.
It never raises for network conditions: every failure ends up in the
returned ``ScanResult``.
"""

import asyncio
import logging
import math
import platform
import re
import socket
from dataclasses import dataclass
from typing import Optional, Protocol

from .models import ProbeStatus, ScanResult
from .neighbor_table import NeighborTable
from .oui_lookup import VendorDatabase
from .topology import LocalTopologyResolver

logger = logging.getLogger(__name__)

# "time=0.045 ms" (Linux/macOS), "time=12ms" / "time<1ms" (Windows)
LATENCY_PATTERN = re.compile(r"time\s*([=<])\s*([\d.]+)\s*ms", re.IGNORECASE)

UNREACHABLE_MARKERS = ("unreachable", "unknown host", "no route")

# Extra wall-clock allowance on top of the ping timeout before the process is killed
PING_GRACE_SECONDS = 1.0


@dataclass(frozen=True)
class EchoReply:
    """Outcome of a single echo request."""
    status: str
    latency_ms: int = -1

    @property
    def success(self) -> bool:
        return self.status == ProbeStatus.SUCCESS


class EchoProber(Protocol):
    async def echo(self, address: str, timeout_ms: int) -> EchoReply:
        ...


def build_ping_command(address: str, timeout_ms: int, system: str = None) -> list[str]:
    """Single-echo ``ping`` invocation for the given platform."""
    system = (system or platform.system()).lower()
    if system == "windows":
        return ["ping", "-n", "1", "-w", str(timeout_ms), address]
    if system == "darwin":
        # macOS takes -W in milliseconds
        return ["ping", "-c", "1", "-W", str(timeout_ms), address]
    # iputils takes -W in seconds
    seconds = max(1, math.ceil(timeout_ms / 1000))
    return ["ping", "-c", "1", "-W", str(seconds), address]


def parse_latency(output: str) -> Optional[int]:
    """Round-trip time in whole milliseconds from ping output."""
    match = LATENCY_PATTERN.search(output)
    if not match:
        return None
    if match.group(1) == "<":
        return 0
    return int(round(float(match.group(2))))


def classify_ping_output(returncode: int, output: str) -> EchoReply:
    """Map a finished ping process onto an EchoReply."""
    lowered = output.lower()
    if returncode == 0:
        latency = parse_latency(output)
        # Windows exits 0 on "Destination host unreachable" replies from a router
        if latency is not None and "unreachable" not in lowered:
            return EchoReply(ProbeStatus.SUCCESS, latency)
    if any(marker in lowered for marker in UNREACHABLE_MARKERS):
        return EchoReply(ProbeStatus.UNREACHABLE)
    if returncode in (0, 1):
        return EchoReply(ProbeStatus.TIMEOUT)
    detail = output.strip().splitlines()[-1] if output.strip() else f"ping exited with code {returncode}"
    return EchoReply(ProbeStatus.error(detail))


async def _reap(process):
    """Kill ``process`` if it is still running and wait for it to exit."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


class PingProber:
    """Echo requests through the system ``ping`` binary (no privileges needed)."""

    def __init__(self, system: str = None):
        self.system = system

    async def echo(self, address: str, timeout_ms: int) -> EchoReply:
        command = build_ping_command(address, timeout_ms, self.system)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return EchoReply(ProbeStatus.error(str(e)))

        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout_ms / 1000 + PING_GRACE_SECONDS,
            )
        except asyncio.TimeoutError:
            await _reap(process)
            return EchoReply(ProbeStatus.TIMEOUT)
        except asyncio.CancelledError:
            await _reap(process)
            raise

        return classify_ping_output(process.returncode, stdout.decode(errors="replace"))


def create_prober(method: str) -> EchoProber:
    """Echo back-end by name: "ping" or "scapy"."""
    if method == "ping":
        return PingProber()
    if method == "scapy":
        from .scapy_probe import ScapyProber
        return ScapyProber()
    raise ValueError(f"Unknown probe method: {method}")


class ProbeExecutor:
    """Probes one address and enriches reachable hosts."""

    def __init__(
        self,
        prober: EchoProber,
        vendor_db: VendorDatabase,
        neighbor_table: NeighborTable,
        topology: LocalTopologyResolver = None,
    ):
        self.prober = prober
        self.vendor_db = vendor_db
        self.neighbor_table = neighbor_table
        self.topology = topology or LocalTopologyResolver()

    async def probe(
        self,
        address: str,
        timeout_ms: int,
        resolve_hostname: bool = True,
        resolve_vendor: bool = True,
    ) -> ScanResult:
        """
        Probe a single address.

        Args:
            address: IPv4 address to probe
            timeout_ms: How long to wait for the echo reply
            resolve_hostname: Attempt reverse DNS for reachable hosts
            resolve_vendor: Attempt MAC and vendor lookup for reachable on-link hosts

        Returns:
            The result for this address; failures are recorded in ``status``
        """
        try:
            reply = await self.prober.echo(address, timeout_ms)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return ScanResult(address=address, reachable=False, status=ProbeStatus.error(str(e)))

        if not reply.success:
            return ScanResult(address=address, reachable=False, status=reply.status)

        mac_address = None
        vendor = None
        hostname = None

        if resolve_vendor:
            mac_address, vendor = await self._resolve_mac_vendor(address)

        if resolve_hostname:
            hostname = await self._resolve_hostname(address)

        return ScanResult(
            address=address,
            reachable=True,
            latency_ms=reply.latency_ms,
            status=ProbeStatus.SUCCESS,
            hostname=hostname,
            mac_address=mac_address,
            vendor=vendor,
        )

    async def _resolve_mac_vendor(self, address: str) -> tuple[Optional[str], Optional[str]]:
        # MAC addresses are only knowable for on-link targets.
        # Interface enumeration blocks, so it runs off the event loop.
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self.topology.is_on_link, address):
            return None, None

        try:
            mac_address = await self.neighbor_table.resolve_mac(address)
        except Exception as e:
            logger.debug("MAC lookup failed for %s: %s", address, e)
            return None, None
        if not mac_address:
            return None, None

        try:
            await self.vendor_db.ensure_loaded()
            vendor = self.vendor_db.lookup_vendor(mac_address)
        except Exception as e:
            logger.debug("Vendor lookup failed for %s (%s): %s", address, mac_address, e)
            vendor = None

        return mac_address, vendor

    async def _resolve_hostname(self, address: str) -> Optional[str]:
        """Resolve IP address to hostname."""
        loop = asyncio.get_running_loop()
        try:
            hostname, _, _ = await loop.run_in_executor(None, socket.gethostbyaddr, address)
            return hostname
        except (socket.herror, socket.gaierror, OSError):
            return None
