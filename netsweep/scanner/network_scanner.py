import asyncio
import logging
from typing import Optional, List

from ..core.errors import ScanInProgressError
from ..db.history import HistorySink
from .models import ScanRequest, ScanResult, ScanSettings, ScanState
from .orchestrator import ScanOrchestrator, ScanRun

logger = logging.getLogger(__name__)


class ScanManager:
    """Runs one scan at a time in the background and fans out its events."""

    def __init__(self, orchestrator: ScanOrchestrator, history_sink: Optional[HistorySink] = None):
        self.orchestrator = orchestrator
        self.history_sink = history_sink
        self.current_run: Optional[ScanRun] = None
        self.results: List[ScanResult] = []
        self._scan_task: Optional[asyncio.Task] = None
        self._callbacks = []

    def register_callback(self, callback):
        """Register a callback for scan updates."""
        self._callbacks.append(callback)

    def unregister_callback(self, callback):
        """Unregister a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def _notify_callbacks(self, event_type: str, data: dict):
        """Notify all registered callbacks."""
        for callback in self._callbacks:
            try:
                await callback(event_type, data)
            except Exception as e:
                logger.warning("Callback error: %s", e)

    @property
    def is_running(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    def start_scan(self, request: ScanRequest) -> ScanRun:
        """
        Validate and start a scan in the background.

        Validation errors (unauthorized, invalid or oversized range) are raised
        here, before anything is dispatched.
        """
        if self.is_running:
            raise ScanInProgressError("A scan is already running")
        return self._launch(self.orchestrator.scan(request))

    def start_local_scan(self, settings: ScanSettings) -> ScanRun:
        """Start a background scan of the local network."""
        if self.is_running:
            raise ScanInProgressError("A scan is already running")
        return self._launch(self.orchestrator.scan_local_network(settings))

    def _launch(self, run: ScanRun) -> ScanRun:
        self.current_run = run
        self.results = []
        self._scan_task = asyncio.create_task(self._consume(run))
        return run

    async def cancel_scan(self) -> bool:
        """Cancel the running scan and wait for it to wind down."""
        if not self.is_running:
            return False
        self.current_run.cancel()
        await asyncio.shield(self._scan_task)
        return True

    async def wait(self):
        """Wait for the current background scan, if any, to finish."""
        if self._scan_task is not None:
            await asyncio.shield(self._scan_task)

    async def shutdown(self):
        if self.is_running:
            self.current_run.cancel()
            self._scan_task.cancel()
            try:
                await self._scan_task
            except asyncio.CancelledError:
                pass

    def status(self) -> dict:
        run = self.current_run
        if run is None:
            return {"state": ScanState.IDLE.value, "scanned": 0, "total": 0, "progress": 0, "online": 0}
        return {
            "target": run.request.target_description,
            "state": run.state.value,
            "scanned": run.scanned,
            "total": run.total,
            "progress": run.percent,
            "online": run.online,
            "started_at": run.started_at,
            "completed_at": run.completed_at,
        }

    async def _consume(self, run: ScanRun):
        await self._notify_callbacks("scan_started", {
            "target": run.request.target_description,
            "total": run.total,
        })

        try:
            async for result in run:
                self.results.append(result)
                await self._notify_callbacks("scan_result", result.to_dict())
                await self._notify_callbacks("scan_progress", {
                    "scanned": run.scanned,
                    "total": run.total,
                    "progress": run.percent,
                })
        except Exception as e:
            logger.error("Scan error: %s", e)
            await self._notify_callbacks("scan_failed", {"error": str(e)})
        else:
            await self._notify_callbacks(f"scan_{run.state.value}", self.status())
        finally:
            await self._record_history(run)

    async def _record_history(self, run: ScanRun):
        if self.history_sink is None or not run.state.is_terminal:
            return
        if run.scanned == 0 and run.state != ScanState.FAILED:
            return
        try:
            await self.history_sink.record(run.summary())
        except Exception as e:
            logger.error("Failed to record scan history: %s", e)
