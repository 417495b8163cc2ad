from fastapi import APIRouter, WebSocket

router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def events_websocket(websocket: WebSocket):
    """Live schedule events. The first message reports the robot connection state."""
    hub = websocket.app.state.hub
    robot = websocket.app.state.robot
    await hub.handle_connection(
        websocket, {"kind": "connectionStatus", "connected": robot.connected}
    )
