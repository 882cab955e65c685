"""Feed em tempo real do quadro da cozinha via WebSocket.

O barramento de eventos é síncrono e pode disparar a partir de threads do
threadpool; os eventos entram numa fila do loop e uma tarefa de fundo os
aplica ao ``OrderBoard`` do tenant e envia o snapshot das contas.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, DefaultDict, Iterable, List, Optional

from fastapi import WebSocket

from app.schemas.entities import OrderEntity
from app.services.order_board import OrderBoard

logger = logging.getLogger(__name__)


class OrderFeed:
    def __init__(self) -> None:
        self._sockets: DefaultDict[int, List[WebSocket]] = defaultdict(list)
        self._boards: dict[int, OrderBoard] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._drain_forever())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._queue = None
        self._loop = None

    def connection_count(self, tenant_id: int) -> int:
        return len(self._sockets.get(int(tenant_id), []))

    def publish(self, event: dict[str, Any]) -> None:
        """Handler do barramento; seguro para chamar de qualquer thread."""
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or loop.is_closed():
            return
        tenant_id = int(event.get("tenant_id") or 0)
        if not self._sockets.get(tenant_id):
            return
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def connect(self, websocket: WebSocket, tenant_id: int, orders: Iterable[OrderEntity]) -> OrderBoard:
        tenant_id = int(tenant_id)
        board = self._boards.get(tenant_id)
        if board is None:
            board = OrderBoard(tenant_id)
            self._boards[tenant_id] = board
        # Leitura nova do banco sempre substitui o conjunto local
        board.load(orders)
        self._sockets[tenant_id].append(websocket)
        await websocket.send_text(json.dumps({"type": "snapshot", **board.snapshot()}))
        logger.info("KDS conectado", extra={"tenant_id": tenant_id})
        return board

    def disconnect(self, websocket: WebSocket, tenant_id: int) -> None:
        tenant_id = int(tenant_id)
        sockets = self._sockets.get(tenant_id, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self._sockets.pop(tenant_id, None)
            self._boards.pop(tenant_id, None)

    async def dispatch(self, event: dict[str, Any]) -> bool:
        tenant_id = int(event.get("tenant_id") or 0)
        board = self._boards.get(tenant_id)
        if board is None or not board.apply_event(event):
            return False
        await self._broadcast(tenant_id, {"type": "bills", "event": event.get("event"), **board.snapshot()})
        return True

    async def _broadcast(self, tenant_id: int, message: dict[str, Any]) -> None:
        text = json.dumps(message)
        for websocket in list(self._sockets.get(tenant_id, [])):
            try:
                await websocket.send_text(text)
            except Exception:
                logger.warning("Falha ao enviar para o KDS; removendo conexão", extra={"tenant_id": tenant_id})
                self.disconnect(websocket, tenant_id)

    async def _drain_forever(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Falha ao aplicar evento no quadro", extra={"event": event.get("event")})


order_feed = OrderFeed()
