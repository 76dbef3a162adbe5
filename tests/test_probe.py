"""Tests for single-address probing and enrichment."""

import asyncio
import socket
import threading

import pytest

from netsweep.scanner import probe as probe_module
from netsweep.scanner.models import ProbeStatus
from netsweep.scanner.probe import (
    PingProber,
    ProbeExecutor,
    build_ping_command,
    classify_ping_output,
    create_prober,
    parse_latency,
)

from .fakes import FakeNeighborTable, FakeProber, FakeTopology

LINUX_SUCCESS = """\
PING 192.168.1.1 (192.168.1.1) 56(84) bytes of data.
64 bytes from 192.168.1.1: icmp_seq=1 ttl=64 time=2.64 ms

--- 192.168.1.1 ping statistics ---
1 packets transmitted, 1 received, 0% packet loss, time 0ms
rtt min/avg/max/mdev = 2.640/2.640/2.640/0.000 ms
"""

LINUX_TIMEOUT = """\
PING 192.168.1.77 (192.168.1.77) 56(84) bytes of data.

--- 192.168.1.77 ping statistics ---
1 packets transmitted, 0 received, 100% packet loss, time 0ms
"""

LINUX_UNREACHABLE = """\
PING 192.168.1.78 (192.168.1.78) 56(84) bytes of data.
From 192.168.1.20 icmp_seq=1 Destination Host Unreachable

--- 192.168.1.78 ping statistics ---
1 packets transmitted, 0 received, +1 errors, 100% packet loss, time 0ms
"""

WINDOWS_SUCCESS = """\
Pinging 192.168.1.1 with 32 bytes of data:
Reply from 192.168.1.1: bytes=32 time<1ms TTL=64
"""

WINDOWS_ROUTER_UNREACHABLE = """\
Pinging 10.0.0.9 with 32 bytes of data:
Reply from 10.0.0.1: Destination host unreachable.
"""


class TestPingCommand:
    """Tests for build_ping_command."""

    def test_linux_uses_seconds(self):
        assert build_ping_command("10.0.0.1", 1500, "Linux") == ["ping", "-c", "1", "-W", "2", "10.0.0.1"]

    def test_linux_minimum_one_second(self):
        assert build_ping_command("10.0.0.1", 200, "Linux")[4] == "1"

    def test_macos_uses_milliseconds(self):
        assert build_ping_command("10.0.0.1", 750, "Darwin") == ["ping", "-c", "1", "-W", "750", "10.0.0.1"]

    def test_windows(self):
        assert build_ping_command("10.0.0.1", 1000, "Windows") == ["ping", "-n", "1", "-w", "1000", "10.0.0.1"]


class TestPingOutput:
    """Tests for ping output parsing and classification."""

    def test_parse_latency(self):
        assert parse_latency(LINUX_SUCCESS) == 3
        assert parse_latency("time=12ms") == 12
        assert parse_latency(WINDOWS_SUCCESS) == 0
        assert parse_latency(LINUX_TIMEOUT) is None

    def test_success(self):
        reply = classify_ping_output(0, LINUX_SUCCESS)
        assert reply.success
        assert reply.latency_ms == 3

    def test_timeout(self):
        reply = classify_ping_output(1, LINUX_TIMEOUT)
        assert reply.status == ProbeStatus.TIMEOUT
        assert reply.latency_ms == -1

    def test_unreachable(self):
        assert classify_ping_output(1, LINUX_UNREACHABLE).status == ProbeStatus.UNREACHABLE

    def test_windows_router_unreachable_is_not_success(self):
        assert classify_ping_output(0, WINDOWS_ROUTER_UNREACHABLE).status == ProbeStatus.UNREACHABLE

    def test_error(self):
        reply = classify_ping_output(2, "ping: socket: Operation not permitted\n")
        assert reply.status == "error: ping: socket: Operation not permitted"


class TestPingProber:
    """Tests for PingProber process handling."""

    async def test_missing_binary_is_error(self, monkeypatch):
        async def no_ping(*args, **kwargs):
            raise FileNotFoundError("ping not found")

        monkeypatch.setattr(probe_module.asyncio, "create_subprocess_exec", no_ping)
        reply = await PingProber(system="Linux").echo("10.0.0.1", 100)
        assert reply.status.startswith("error: ")
        assert not reply.success

    async def test_cancelled_echo_reaps_process(self, monkeypatch):
        """A ping killed by cancellation is waited for, not left as a zombie."""
        process = HangingProcess()

        async def spawn(*args, **kwargs):
            return process

        monkeypatch.setattr(probe_module.asyncio, "create_subprocess_exec", spawn)
        task = asyncio.create_task(PingProber(system="Linux").echo("10.0.0.1", 5000))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert process.killed
        assert process.waited

    async def test_timeout_reaps_process(self, monkeypatch):
        process = HangingProcess()

        async def spawn(*args, **kwargs):
            return process

        monkeypatch.setattr(probe_module, "PING_GRACE_SECONDS", 0.0)
        monkeypatch.setattr(probe_module.asyncio, "create_subprocess_exec", spawn)
        reply = await PingProber(system="Linux").echo("10.0.0.1", 20)

        assert reply.status == ProbeStatus.TIMEOUT
        assert process.killed
        assert process.waited


class HangingProcess:
    """Subprocess stand-in whose ping never answers until killed."""

    def __init__(self):
        self.returncode = None
        self.killed = False
        self.waited = False
        self._exited = asyncio.Event()

    async def communicate(self):
        await self._exited.wait()
        return b"", b""

    def kill(self):
        self.killed = True
        self.returncode = -9
        self._exited.set()

    async def wait(self):
        await self._exited.wait()
        self.waited = True
        return self.returncode


class TestCreateProber:
    def test_ping(self):
        assert isinstance(create_prober("ping"), PingProber)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_prober("carrier-pigeon")


class TestProbeExecutor:
    """Tests for ProbeExecutor.probe."""

    def _executor(self, vendor_db, prober=None, neighbor_table=None, on_link=True):
        return ProbeExecutor(
            prober=prober or FakeProber(reachable={"192.168.1.5"}),
            vendor_db=vendor_db,
            neighbor_table=neighbor_table or FakeNeighborTable({"192.168.1.5": "00:1A:2B:3C:4D:5E"}),
            topology=FakeTopology(on_link=on_link),
        )

    async def test_reachable_on_link_enriched(self, vendor_db):
        executor = self._executor(vendor_db)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=False, resolve_vendor=True)
        assert result.reachable
        assert result.status == ProbeStatus.SUCCESS
        assert result.latency_ms == 3
        assert result.mac_address == "00:1A:2B:3C:4D:5E"
        assert result.vendor == "Acme Corp"
        assert vendor_db.is_loaded

    async def test_on_link_check_runs_off_the_event_loop(self, vendor_db):
        class RecordingTopology(FakeTopology):
            def is_on_link(self, candidate):
                self.thread = threading.get_ident()
                return True

        topology = RecordingTopology()
        executor = ProbeExecutor(
            prober=FakeProber(reachable={"192.168.1.5"}),
            vendor_db=vendor_db,
            neighbor_table=FakeNeighborTable({"192.168.1.5": "00:1A:2B:3C:4D:5E"}),
            topology=topology,
        )
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=False, resolve_vendor=True)

        assert result.mac_address == "00:1A:2B:3C:4D:5E"
        assert topology.thread != threading.get_ident()

    async def test_off_link_skips_mac_lookup(self, vendor_db):
        neighbors = FakeNeighborTable({"192.168.1.5": "00:1A:2B:3C:4D:5E"})
        executor = self._executor(vendor_db, neighbor_table=neighbors, on_link=False)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=False, resolve_vendor=True)
        assert result.reachable
        assert result.mac_address is None
        assert neighbors.lookups == []

    async def test_vendor_disabled(self, vendor_db):
        neighbors = FakeNeighborTable({"192.168.1.5": "00:1A:2B:3C:4D:5E"})
        executor = self._executor(vendor_db, neighbor_table=neighbors)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=False, resolve_vendor=False)
        assert result.mac_address is None
        assert neighbors.lookups == []

    async def test_neighbor_failure_swallowed(self, vendor_db):
        neighbors = FakeNeighborTable(error=OSError("netlink gone"))
        executor = self._executor(vendor_db, neighbor_table=neighbors)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=False, resolve_vendor=True)
        assert result.reachable
        assert result.mac_address is None
        assert result.vendor is None

    async def test_randomized_mac_without_vendor(self, vendor_db):
        neighbors = FakeNeighborTable({"192.168.1.5": "02:11:22:33:44:55"})
        executor = self._executor(vendor_db, neighbor_table=neighbors)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=False, resolve_vendor=True)
        assert result.vendor is None
        assert result.vendor_display == "Randomized / local MAC"

    async def test_unreachable(self, vendor_db):
        neighbors = FakeNeighborTable()
        executor = self._executor(vendor_db, neighbor_table=neighbors)
        result = await executor.probe("192.168.1.6", 1000, resolve_hostname=True, resolve_vendor=True)
        assert not result.reachable
        assert result.latency_ms == -1
        assert result.status == ProbeStatus.TIMEOUT
        assert result.hostname is None
        assert neighbors.lookups == []

    async def test_prober_exception_becomes_error_status(self, vendor_db):
        class ExplodingProber:
            async def echo(self, address, timeout_ms):
                raise RuntimeError("socket exploded")

        executor = self._executor(vendor_db, prober=ExplodingProber())
        result = await executor.probe("192.168.1.5", 1000)
        assert not result.reachable
        assert result.latency_ms == -1
        assert result.status == "error: socket exploded"

    async def test_hostname_resolved(self, vendor_db, monkeypatch):
        monkeypatch.setattr(probe_module.socket, "gethostbyaddr", lambda ip: ("router.lan", [], [ip]))
        executor = self._executor(vendor_db)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=True, resolve_vendor=False)
        assert result.hostname == "router.lan"

    async def test_hostname_failure_leaves_none(self, vendor_db, monkeypatch):
        def no_ptr(ip):
            raise socket.herror(1, "Unknown host")

        monkeypatch.setattr(probe_module.socket, "gethostbyaddr", no_ptr)
        executor = self._executor(vendor_db)
        result = await executor.probe("192.168.1.5", 1000, resolve_hostname=True, resolve_vendor=False)
        assert result.reachable
        assert result.hostname is None
