"""Raw-socket ICMP echo through scapy. Requires CAP_NET_RAW or root."""

import asyncio
import logging
import time

from scapy.all import ICMP, IP, conf, sr1

from .models import ProbeStatus
from .probe import EchoReply

logging.getLogger("scapy.runtime").setLevel(logging.ERROR)

ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_TIME_EXCEEDED = 11


class ScapyProber:
    """Echo requests crafted and sent with scapy."""

    def __init__(self):
        conf.verb = 0  # Disable scapy verbose output

    def _send(self, address: str, timeout_ms: int) -> EchoReply:
        """Send one echo request and wait for the answer (blocking)."""
        packet = IP(dst=address) / ICMP()
        try:
            started = time.perf_counter()
            response = sr1(packet, timeout=timeout_ms / 1000, verbose=0)
            elapsed_ms = int(round((time.perf_counter() - started) * 1000))
        except PermissionError:
            return EchoReply(ProbeStatus.error("raw sockets need CAP_NET_RAW or root"))
        except OSError as e:
            return EchoReply(ProbeStatus.error(str(e)))

        if response is None or not response.haslayer(ICMP):
            return EchoReply(ProbeStatus.TIMEOUT)

        icmp_type = int(response.getlayer(ICMP).type)
        if icmp_type == ICMP_ECHO_REPLY:
            return EchoReply(ProbeStatus.SUCCESS, elapsed_ms)
        if icmp_type in (ICMP_DEST_UNREACHABLE, ICMP_TIME_EXCEEDED):
            return EchoReply(ProbeStatus.UNREACHABLE)
        return EchoReply(ProbeStatus.error(f"unexpected ICMP type {icmp_type}"))

    async def echo(self, address: str, timeout_ms: int) -> EchoReply:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send, address, timeout_ms)
