from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List


Handler = Callable[[dict[str, Any]], None]

ANY_EVENT = "*"


class EventBus:
    """Barramento síncrono em processo.

    Handlers inscritos em ``"*"`` recebem todos os eventos. A falha de um
    handler é registrada e não impede os demais.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._logger = logging.getLogger(__name__)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        handlers = list(self._handlers.get(event_name, [])) + list(self._handlers.get(ANY_EVENT, []))
        if not handlers:
            self._logger.debug("EventBus: no handlers for %s", event_name)
            return
        for handler in handlers:
            try:
                handler({**payload, "event": event_name})
            except Exception:
                self._logger.exception("EventBus handler failed for %s", event_name, extra={"event": event_name})

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)


event_bus = EventBus()
