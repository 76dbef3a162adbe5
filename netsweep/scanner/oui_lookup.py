"""
OUI (Organizationally Unique Identifier) lookup for MAC address vendor identification.
Uses a local CSV table of ``prefix,vendor`` lines.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Iterable

logger = logging.getLogger(__name__)

# Bundled vendor table
OUI_DATABASE_PATH = Path(__file__).parent / "oui.csv"

RANDOMIZED_MAC_LABEL = "Randomized / local MAC"
UNKNOWN_VENDOR_LABEL = "Unknown vendor"
NO_MAC_LABEL = "—"

_HEX_DIGITS = set("0123456789ABCDEF")


def _hex_only(value: str) -> str:
    """Uppercase hex digits of ``value`` with separators and junk dropped."""
    return "".join(c for c in value.upper() if c in _HEX_DIGITS)


def _normalize_mac_prefix(mac: str) -> Optional[str]:
    """First 6 hex digits (the OUI) of a MAC in any format."""
    hex_digits = _hex_only(mac)
    return hex_digits[:6] if len(hex_digits) >= 6 else None


def _normalize_table_prefix(prefix: str) -> Optional[str]:
    hex_digits = _hex_only(prefix)
    return hex_digits if len(hex_digits) == 6 else None


def parse_vendor_table(lines: Iterable[str]) -> Dict[str, str]:
    """
    Parse ``prefix,vendor`` lines.

    Blank lines and ``#`` comments are ignored, malformed lines are skipped,
    and a later line for the same prefix replaces an earlier one.
    """
    vendors: Dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(",", 1)
        if len(parts) != 2:
            continue
        prefix = _normalize_table_prefix(parts[0])
        vendor = parts[1].strip()
        if prefix is None or not vendor:
            continue
        vendors[prefix] = vendor
    return vendors


def is_locally_administered(mac: Optional[str]) -> bool:
    """Whether the locally-administered bit (bit 1 of the first octet) is set."""
    if not mac:
        return False
    hex_digits = _hex_only(mac)
    if len(hex_digits) < 2:
        return False
    return bool(int(hex_digits[:2], 16) & 0x02)


def describe_vendor(mac: Optional[str], vendor: Optional[str]) -> str:
    """
    Display label for a host's vendor.

    Many modern OSes use randomized MACs which won't match public OUIs;
    those are labelled as such instead of "unknown".
    """
    if vendor:
        return vendor
    if not mac:
        return NO_MAC_LABEL
    if is_locally_administered(mac):
        return RANDOMIZED_MAC_LABEL
    return UNKNOWN_VENDOR_LABEL


class LoadState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class VendorDatabase:
    """
    OUI prefix to vendor name table, loaded once on first use.

    Concurrent ``ensure_loaded`` callers queue behind a single load; once the
    table is loaded, lookups read it without locking.
    """

    def __init__(self, sources: Iterable[Path] = None):
        if sources is None:
            sources = [OUI_DATABASE_PATH]
        self.sources = [Path(p) for p in sources]
        self.state = LoadState.UNLOADED
        self.loaded_from: Optional[Path] = None
        self._vendors: Dict[str, str] = {}
        self._load_gate = asyncio.Lock()

    @classmethod
    def from_settings(cls, configured_path: Optional[str]) -> "VendorDatabase":
        sources = [OUI_DATABASE_PATH]
        if configured_path:
            sources.insert(0, Path(configured_path))
        return cls(sources)

    @property
    def is_loaded(self) -> bool:
        return self.state == LoadState.LOADED

    def __len__(self) -> int:
        return len(self._vendors)

    async def ensure_loaded(self):
        """Load the table if nobody has yet; a missing table loads as empty."""
        if self.state == LoadState.LOADED:
            return

        async with self._load_gate:
            if self.state == LoadState.LOADED:
                return

            self.state = LoadState.LOADING
            try:
                loop = asyncio.get_running_loop()
                vendors = await loop.run_in_executor(None, self._read_first_available)
            except asyncio.CancelledError:
                # The next caller starts the load over.
                self.state = LoadState.UNLOADED
                raise
            except Exception:
                # A failed read still leaves a usable (empty) table.
                self.state = LoadState.LOADED
                raise

            self._vendors = vendors
            self.state = LoadState.LOADED

    def _read_first_available(self) -> Dict[str, str]:
        for path in self.sources:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    vendors = parse_vendor_table(f)
            except OSError as e:
                logger.debug("OUI table not readable at %s: %s", path, e)
                continue
            self.loaded_from = path
            logger.info("OUI database loaded from %s: %d vendors", path, len(vendors))
            return vendors

        logger.warning("OUI database not found in any of: %s", ", ".join(str(p) for p in self.sources))
        return {}

    def lookup_vendor(self, mac: Optional[str]) -> Optional[str]:
        """
        Look up the vendor for a MAC address.

        Args:
            mac: MAC address in any format (e.g., "00:11:22:33:44:55", "00-11-22-33-44-55", "001122334455")

        Returns:
            Vendor name or None if not found or the table is not loaded yet
        """
        if self.state != LoadState.LOADED or not mac:
            return None

        prefix = _normalize_mac_prefix(mac)
        if prefix is None:
            return None

        return self._vendors.get(prefix)
