from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from ..core.config import settings
from ..core.errors import InvalidRangeError, ScanInProgressError, UnauthorizedScanError
from ..db.database import get_db
from ..db.models import ScanSession
from ..scanner.models import ScanRequest, ScanSettings
from ..scanner.network_scanner import ScanManager
from ..scanner.oui_lookup import VendorDatabase, describe_vendor, is_locally_administered
from .schemas import (
    ScanStartRequest,
    ScanTriggerResponse,
    ScanStatusResponse,
    ScanResultResponse,
    ScanSessionResponse,
    VendorResponse,
)

router = APIRouter()


def get_scan_manager(request: Request) -> ScanManager:
    return request.app.state.scan_manager


def get_vendor_db(request: Request) -> VendorDatabase:
    return request.app.state.vendor_db


def _scan_settings(body: ScanStartRequest) -> ScanSettings:
    """Merge request options over configured defaults."""
    return ScanSettings(
        timeout_ms=body.timeout_ms or settings.SCAN_TIMEOUT_MS,
        max_concurrent_probes=body.max_concurrent_probes or settings.MAX_CONCURRENT_PROBES,
        resolve_hostnames=settings.RESOLVE_HOSTNAMES if body.resolve_hostnames is None else body.resolve_hostnames,
        resolve_vendor=settings.RESOLVE_VENDOR if body.resolve_vendor is None else body.resolve_vendor,
        user_authorized=body.user_authorized,
    )


@router.post("/scans", response_model=ScanTriggerResponse, status_code=202)
async def start_scan(body: ScanStartRequest, manager: ScanManager = Depends(get_scan_manager)):
    """Start a background scan; progress and results arrive over the WebSocket."""
    scan_settings = _scan_settings(body)

    try:
        if body.local:
            run = manager.start_local_scan(scan_settings)
        elif body.subnet is not None:
            run = manager.start_scan(ScanRequest.for_cidr(body.subnet, scan_settings))
        else:
            run = manager.start_scan(ScanRequest.for_range(body.start_ip, body.end_ip, scan_settings))
    except UnauthorizedScanError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScanInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return ScanTriggerResponse(
        success=True,
        message="Scan started",
        target=run.request.target_description,
        total_addresses=run.total,
    )


@router.get("/scans/current", response_model=ScanStatusResponse)
async def get_scan_status(manager: ScanManager = Depends(get_scan_manager)):
    """Get progress of the current or most recent scan."""
    return ScanStatusResponse(**manager.status())


@router.get("/scans/current/results", response_model=list[ScanResultResponse])
async def get_scan_results(
    online_only: bool = Query(False),
    manager: ScanManager = Depends(get_scan_manager),
):
    """Get results of the current or most recent scan, in completion order."""
    results = manager.results
    if online_only:
        results = [r for r in results if r.reachable]
    return [ScanResultResponse(**r.to_dict()) for r in results]


@router.post("/scans/current/cancel", response_model=ScanStatusResponse)
async def cancel_scan(manager: ScanManager = Depends(get_scan_manager)):
    """Cancel the running scan."""
    if not await manager.cancel_scan():
        raise HTTPException(status_code=409, detail="No scan is running")
    return ScanStatusResponse(**manager.status())


@router.get("/scans/sessions", response_model=list[ScanSessionResponse])
async def get_scan_sessions(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Get recent scan sessions."""
    result = await db.execute(
        select(ScanSession)
        .order_by(desc(ScanSession.completed_at))
        .limit(limit)
    )
    sessions = result.scalars().all()

    return [ScanSessionResponse.model_validate(s) for s in sessions]


@router.get("/vendors/{mac_address}", response_model=VendorResponse)
async def lookup_vendor(mac_address: str, vendor_db: VendorDatabase = Depends(get_vendor_db)):
    """Look up the hardware vendor for a MAC address."""
    await vendor_db.ensure_loaded()
    vendor = vendor_db.lookup_vendor(mac_address)
    return VendorResponse(
        mac_address=mac_address,
        vendor=vendor,
        vendor_display=describe_vendor(mac_address, vendor),
        locally_administered=is_locally_administered(mac_address),
    )
