"""Scan history sinks: where post-scan summaries go."""

from typing import TYPE_CHECKING, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import ScanSession

if TYPE_CHECKING:
    from ..scanner.models import ScanSummary


class HistorySink(Protocol):
    async def record(self, summary: "ScanSummary") -> None:
        ...


class SqlHistorySink:
    """Stores each summary as a ScanSession row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, summary: "ScanSummary") -> ScanSession:
        async with self.session_factory() as session:
            scan_session = ScanSession(
                target=summary.target,
                status=summary.state.value,
                is_success=summary.success,
                total_addresses=summary.total_addresses,
                devices_scanned=summary.total_scanned,
                devices_online=summary.online,
                devices_offline=summary.offline,
                summary=summary.headline,
                details=summary.details,
                error_message=summary.error,
                started_at=summary.started_at,
                completed_at=summary.completed_at,
            )
            session.add(scan_session)
            await session.commit()
            return scan_session
