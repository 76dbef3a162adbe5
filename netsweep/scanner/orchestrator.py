"""
Scan orchestration: bounded-concurrency probing with streamed results.

A ``ScanRun`` runs a fixed pool of worker tasks. Each worker pulls the next
address from a shared queue, waits the pacing delay, probes, and pushes the
result onto an output queue that the consumer drains with ``async for``.
Results therefore arrive in completion order, not address order, and no
more than ``max_concurrent_probes`` probes are ever in flight.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..core.errors import InvalidRangeError, ScanFailedError, UnauthorizedScanError
from .address_range import expand_cidr, expand_range, is_private_network
from .models import ScanRequest, ScanResult, ScanSettings, ScanState, ScanSummary
from .probe import ProbeExecutor
from .topology import LocalTopologyResolver

logger = logging.getLogger(__name__)

DEFAULT_PACING_DELAY_MS = 10

ProgressCallback = Callable[[int], None]

# Markers passed through the result queue alongside ScanResults
_WORKER_DONE = object()
_CANCELLED = object()


class _WorkerFailure:
    def __init__(self, error: BaseException):
        self.error = error


class ScanRun:
    """
    One execution of a scan request.

    Iterate it once with ``async for``; the iteration ends when every address
    has been probed, after ``cancel()``, or by raising ``ScanFailedError``.
    """

    def __init__(
        self,
        request: ScanRequest,
        addresses: list[str],
        executor: ProbeExecutor,
        pacing_delay_ms: int = DEFAULT_PACING_DELAY_MS,
        progress: Optional[ProgressCallback] = None,
    ):
        self.request = request
        self.addresses = addresses
        self.executor = executor
        self.pacing_delay = pacing_delay_ms / 1000
        self.progress = progress

        self.state = ScanState.IDLE
        self.total = len(addresses)
        self.scanned = 0
        self.online = 0
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.error: Optional[BaseException] = None

        self._iterated = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._cancel_event = asyncio.Event()
        self._results: asyncio.Queue = asyncio.Queue()

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 100
        return self.scanned * 100 // self.total

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self):
        """
        Stop dispatching probes.

        Safe to call from any thread. Addresses not yet dispatched are never
        probed; probes already in flight finish within their own timeout but
        their results are not yielded.
        """
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._signal_cancel)
                return
        self._signal_cancel()

    def _signal_cancel(self):
        if self._cancel_event.is_set() or self.state.is_terminal:
            return
        self._cancel_event.set()
        self._results.put_nowait(_CANCELLED)

    def __aiter__(self):
        if self._iterated:
            raise RuntimeError("A scan run can only be iterated once")
        self._iterated = True
        return self._run()

    async def _worker(self, work: asyncio.Queue):
        settings = self.request.settings
        try:
            while not self._cancel_event.is_set():
                try:
                    address = work.get_nowait()
                except asyncio.QueueEmpty:
                    break

                await asyncio.sleep(self.pacing_delay)
                if self._cancel_event.is_set():
                    break

                result = await self.executor.probe(
                    address,
                    settings.timeout_ms,
                    resolve_hostname=settings.resolve_hostnames,
                    resolve_vendor=settings.resolve_vendor,
                )
                self._results.put_nowait(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._results.put_nowait(_WorkerFailure(e))
            return
        self._results.put_nowait(_WORKER_DONE)

    def _record(self, result: ScanResult):
        self.scanned += 1
        if result.reachable:
            self.online += 1
        if self.progress is not None:
            self.progress(self.percent)

    def _finish(self, state: ScanState):
        self.state = state
        self.completed_at = datetime.now(timezone.utc)
        logger.info(
            "Scan of %s %s: %d/%d probed, %d online",
            self.request.target_description, state.value, self.scanned, self.total, self.online,
        )

    async def _run(self):
        self._loop = asyncio.get_running_loop()
        self.state = ScanState.RUNNING
        self.started_at = datetime.now(timezone.utc)

        work: asyncio.Queue = asyncio.Queue()
        for address in self.addresses:
            work.put_nowait(address)

        pool_size = min(self.request.settings.max_concurrent_probes, self.total)
        workers = [asyncio.create_task(self._worker(work)) for _ in range(pool_size)]
        finished = 0

        try:
            while finished < len(workers):
                item = await self._results.get()

                if item is _WORKER_DONE:
                    finished += 1
                    continue

                if item is _CANCELLED:
                    # In-flight probes resolve within their timeout; wait for
                    # them so no subprocess outlives the run.
                    await asyncio.gather(*workers, return_exceptions=True)
                    self._finish(ScanState.CANCELLED)
                    return

                if isinstance(item, _WorkerFailure):
                    raise item.error

                self._record(item)
                yield item

            if self._cancel_event.is_set() and self.scanned < self.total:
                self._finish(ScanState.CANCELLED)
            else:
                self._finish(ScanState.COMPLETED)
        except asyncio.CancelledError:
            self._finish(ScanState.CANCELLED)
            raise
        except Exception as e:
            self.error = e
            self._finish(ScanState.FAILED)
            raise ScanFailedError(f"Scan of {self.request.target_description} failed: {e}") from e
        finally:
            pending = [worker for worker in workers if not worker.done()]
            for worker in pending:
                worker.cancel()
            if pending:
                # Let cancelled probes reap their subprocesses before the run ends
                await asyncio.gather(*pending, return_exceptions=True)
            if not self.state.is_terminal:
                # Consumer stopped iterating early
                self._finish(ScanState.CANCELLED)

    def summary(self) -> ScanSummary:
        return ScanSummary(
            target=self.request.target_description,
            state=self.state,
            total_addresses=self.total,
            total_scanned=self.scanned,
            online=self.online,
            offline=self.scanned - self.online,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error=str(self.error) if self.error else None,
        )


def _require_authorized(settings: ScanSettings):
    if not settings.user_authorized:
        raise UnauthorizedScanError(
            "Scanning requires confirmation that you own or are permitted to scan the target network"
        )


class ScanOrchestrator:
    """Validates scan requests and starts scan runs."""

    def __init__(
        self,
        executor: ProbeExecutor,
        pacing_delay_ms: int = DEFAULT_PACING_DELAY_MS,
        topology: LocalTopologyResolver = None,
        default_subnet: Optional[str] = None,
    ):
        self.executor = executor
        self.pacing_delay_ms = pacing_delay_ms
        self.topology = topology or LocalTopologyResolver()
        self.default_subnet = default_subnet

    def expand(self, request: ScanRequest) -> list[str]:
        if request.cidr is not None:
            return expand_cidr(request.cidr)
        return expand_range(request.start, request.end)

    def scan(self, request: ScanRequest, progress: Optional[ProgressCallback] = None) -> ScanRun:
        """
        Validate ``request`` and return a run ready to iterate.

        Raises:
            UnauthorizedScanError: the request is not marked user-authorized
            InvalidRangeError: the target cannot be expanded
            RangeTooLargeError: the target exceeds the address cap
        """
        _require_authorized(request.settings)

        addresses = self.expand(request)
        if addresses and not (is_private_network(addresses[0]) and is_private_network(addresses[-1])):
            logger.warning("Scan target %s includes non-private addresses", request.target_description)

        logger.info("Scanning %s (%d addresses)", request.target_description, len(addresses))
        return ScanRun(request, addresses, self.executor, self.pacing_delay_ms, progress)

    def scan_local_network(
        self,
        settings: ScanSettings,
        progress: Optional[ProgressCallback] = None,
    ) -> ScanRun:
        """Scan the configured default subnet, or the subnet of the first active interface."""
        _require_authorized(settings)

        subnet = self.default_subnet or self.topology.local_subnet()
        if subnet is None:
            raise InvalidRangeError("No active local IPv4 interface to derive a subnet from")
        request = ScanRequest.for_cidr(subnet, settings, label=f"Local Network ({subnet})")
        return self.scan(request, progress)
