from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Set
import json
import asyncio

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


class ScanEventHub:
    """Tracks WebSocket clients and pushes scan events to them."""

    def __init__(self):
        self.clients: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.clients.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.clients.discard(websocket)

    @staticmethod
    def encode(event_type: str, data: dict) -> str:
        # default=str covers datetimes in results and status payloads
        return json.dumps({"type": event_type, "data": data}, default=str)

    async def broadcast(self, event_type: str, data: dict):
        """Send an event to every client, dropping clients that went away."""
        message = self.encode(event_type, data)

        gone = set()
        for client in list(self.clients):
            try:
                await client.send_text(message)
            except Exception:
                gone.add(client)

        self.clients -= gone

    async def send(self, websocket: WebSocket, event_type: str, data: dict):
        await websocket.send_text(self.encode(event_type, data))


hub = ScanEventHub()


async def scanner_callback(event_type: str, data: dict):
    """Forward scan events (progress, results, state changes) to WebSocket clients."""
    await hub.broadcast(event_type, data)


async def _handle_message(websocket: WebSocket, raw: str):
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return
    if not isinstance(message, dict):
        return

    msg_type = message.get("type")
    scan_manager = websocket.app.state.scan_manager

    if msg_type == "ping":
        await hub.send(websocket, "pong", {})
    elif msg_type == "status":
        await hub.send(websocket, "scan_status", scan_manager.status())
    elif msg_type == "cancel":
        cancelled = await scan_manager.cancel_scan()
        await hub.send(websocket, "cancel_ack", {"cancelled": cancelled})


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Real-time scan updates.

    Server events: scan_started, scan_result, scan_progress, scan_completed,
    scan_cancelled, scan_failed. Client messages: ping, status, cancel.
    """
    await hub.connect(websocket)

    try:
        await hub.send(websocket, "connected", websocket.app.state.scan_manager.status())

        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                try:
                    await hub.send(websocket, "ping", {})
                except Exception:
                    break
                continue

            await _handle_message(websocket, raw)

    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
