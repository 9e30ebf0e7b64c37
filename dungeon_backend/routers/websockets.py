from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..state import dispatcher, lobby

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    try:
        while True:
            raw = await ws.receive_text()
            await dispatcher.handle_raw(ws, raw)
    except WebSocketDisconnect:
        logger.debug("WebSocket closed by client")
    except Exception:
        logger.exception("WebSocket error")
    finally:
        await lobby.disconnect(ws)
