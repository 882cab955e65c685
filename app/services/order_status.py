from __future__ import annotations

from app.exceptions import InvalidTransitionError
from app.schemas.entities import ORDER_TYPE_DELIVERY, ORDER_TYPE_DINE_IN

PENDING = "pending"
PREPARING = "preparing"
READY_TO_SEND = "ready_to_send"
OUT_FOR_DELIVERY = "out_for_delivery"
FINISHED = "finished"
CANCELED = "canceled"

ORDER_STATUSES = (PENDING, PREPARING, READY_TO_SEND, OUT_FOR_DELIVERY, FINISHED, CANCELED)
TERMINAL_STATUSES = frozenset({FINISHED, CANCELED})
OPEN_STATUSES = frozenset(ORDER_STATUSES) - TERMINAL_STATUSES
# Colunas do quadro da cozinha, na ordem de exibição
BOARD_COLUMNS = (PENDING, PREPARING, READY_TO_SEND, OUT_FOR_DELIVERY)

STATUS_LABELS = {
    PENDING: "Pendente",
    PREPARING: "Em preparo",
    READY_TO_SEND: "Pronto",
    OUT_FOR_DELIVERY: "Saiu para entrega",
    FINISHED: "Finalizado",
    CANCELED: "Cancelado",
}

_FORWARD = {
    (PENDING, ORDER_TYPE_DELIVERY): {PREPARING},
    (PENDING, ORDER_TYPE_DINE_IN): {PREPARING},
    (PREPARING, ORDER_TYPE_DELIVERY): {READY_TO_SEND},
    (PREPARING, ORDER_TYPE_DINE_IN): {READY_TO_SEND},
    (READY_TO_SEND, ORDER_TYPE_DELIVERY): {OUT_FOR_DELIVERY},
    (READY_TO_SEND, ORDER_TYPE_DINE_IN): {FINISHED},
    (OUT_FOR_DELIVERY, ORDER_TYPE_DELIVERY): {FINISHED},
}


def normalize_status(status: str | None) -> str:
    return (status or "").strip().lower()


def allowed_transitions(current_status: str, order_type: str) -> set[str]:
    current = normalize_status(current_status)
    allowed = set(_FORWARD.get((current, order_type), set()))
    if current in OPEN_STATUSES:
        allowed.add(CANCELED)
    return allowed


def next_status(current_status: str, order_type: str) -> str | None:
    """Próximo status do fluxo normal (botão de avanço do quadro)."""
    forward = _FORWARD.get((normalize_status(current_status), order_type))
    if not forward:
        return None
    return next(iter(forward))


def validate_transition(current_status: str, target_status: str, order_type: str) -> bool:
    """Retorna False quando o status já é o atual (no-op).

    Levanta InvalidTransitionError para qualquer par fora da tabela.
    """
    current = normalize_status(current_status)
    target = normalize_status(target_status)
    if target not in ORDER_STATUSES:
        raise InvalidTransitionError(current, target, order_type)
    if current == target:
        return False
    if target not in allowed_transitions(current, order_type):
        raise InvalidTransitionError(current, target, order_type)
    return True
