"""
IPv4 neighbor cache (ARP table) lookups.

A successful echo to an on-link host leaves an entry in the OS neighbor
cache; these readers pick the MAC address back out of it. Entries for
off-link addresses are meaningless, so callers check on-link first.
"""

import asyncio
import ipaddress
import logging
import re
import sys
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

PROC_NET_ARP = Path("/proc/net/arp")

# ATF_COM: entry is complete
ATF_COM = 0x02

_EMPTY_MACS = {"00:00:00:00:00:00", "FF:FF:FF:FF:FF:FF"}

# BSD/macOS: "? (192.168.1.1) at 0:1a:2b:3c:4d:5e on en0 ifscope [ethernet]"
BSD_ARP_PATTERN = re.compile(r"\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+([0-9a-fA-F]{1,2}(?::[0-9a-fA-F]{1,2}){5})")

# Windows: "  192.168.1.1          00-1a-2b-3c-4d-5e     dynamic"
WINDOWS_ARP_PATTERN = re.compile(r"^\s*(\d+\.\d+\.\d+\.\d+)\s+([0-9a-fA-F]{2}(?:-[0-9a-fA-F]{2}){5})\s")


def normalize_mac(raw: str) -> Optional[str]:
    """
    Canonical upper-case colon form of a 6-octet MAC, or None if malformed.

    Accepts ':' or '-' separators and single-digit octets as printed by
    macOS ``arp`` (``0:1a:2b:3c:4d:5e``).
    """
    if not raw:
        return None
    parts = re.split(r"[:\-]", raw.strip())
    if len(parts) != 6:
        return None
    octets = []
    for part in parts:
        if not 1 <= len(part) <= 2 or not all(c in "0123456789abcdefABCDEF" for c in part):
            return None
        octets.append(part.zfill(2).upper())
    mac = ":".join(octets)
    if mac in _EMPTY_MACS:
        return None
    return mac


def _is_ipv4(address: str) -> bool:
    try:
        ipaddress.IPv4Address(address)
        return True
    except ipaddress.AddressValueError:
        return False


class NeighborTable(Protocol):
    """Resolves the MAC bound to an on-link IPv4 address."""

    async def resolve_mac(self, ip_address: str) -> Optional[str]:
        ...


class ProcNetArpTable:
    """Linux neighbor cache read from /proc/net/arp."""

    def __init__(self, path: Path = PROC_NET_ARP):
        self.path = path

    def parse(self, content: str, ip_address: str) -> Optional[str]:
        # IP address  HW type  Flags  HW address  Mask  Device
        for line in content.splitlines()[1:]:
            fields = line.split()
            if len(fields) < 4 or fields[0] != ip_address:
                continue
            try:
                flags = int(fields[2], 16)
            except ValueError:
                continue
            if not flags & ATF_COM:
                continue
            return normalize_mac(fields[3])
        return None

    async def resolve_mac(self, ip_address: str) -> Optional[str]:
        if not _is_ipv4(ip_address):
            return None
        try:
            content = self.path.read_text()
        except OSError as e:
            logger.debug("Cannot read %s: %s", self.path, e)
            return None
        return self.parse(content, ip_address)


class ArpCommandTable:
    """Neighbor cache read through the ``arp`` utility (macOS, BSD, Windows)."""

    def __init__(self, windows: bool = None):
        self.windows = sys.platform.startswith("win") if windows is None else windows

    def command(self, ip_address: str) -> list[str]:
        if self.windows:
            return ["arp", "-a", ip_address]
        return ["arp", "-n", ip_address]

    def parse(self, output: str, ip_address: str) -> Optional[str]:
        pattern = WINDOWS_ARP_PATTERN if self.windows else BSD_ARP_PATTERN
        for line in output.splitlines():
            match = pattern.search(line)
            if match and match.group(1) == ip_address:
                return normalize_mac(match.group(2))
        return None

    async def resolve_mac(self, ip_address: str) -> Optional[str]:
        if not _is_ipv4(ip_address):
            return None
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(ip_address),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await process.communicate()
        except OSError as e:
            logger.debug("arp lookup for %s failed: %s", ip_address, e)
            return None
        return self.parse(stdout.decode(errors="replace"), ip_address)


def default_neighbor_table() -> NeighborTable:
    """Pick the neighbor cache reader for the running platform."""
    if sys.platform.startswith("linux"):
        return ProcNetArpTable()
    return ArpCommandTable()
