"""Exceções de domínio da aplicação.

Serviços levantam estas exceções; ``register_exception_handlers`` as
converte em respostas ``{"detail": ...}`` com o status HTTP correspondente.
"""

import logging

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message="Erro interno", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv["detail"] = self.message
        return rv


class NotFoundError(AppError):
    def __init__(self, message="Registro não encontrado", payload=None):
        super().__init__(message, 404, payload)


class BusinessRuleError(AppError):
    """Violação de regra de negócio (dados válidos, operação não permitida)."""

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class InvalidTransitionError(BusinessRuleError):
    """Mudança de status fora da tabela de transições do pedido."""

    def __init__(self, current_status, target_status, order_type=None):
        self.current_status = current_status
        self.target_status = target_status
        message = f"Transição inválida: {current_status} -> {target_status}"
        if order_type:
            message = f"{message} ({order_type})"
        super().__init__(
            message,
            status_code=409,
            payload={"current_status": current_status, "target_status": target_status},
        )


class CouponError(BusinessRuleError):
    def __init__(self, message):
        super().__init__(message, status_code=400)


class PersistenceError(AppError):
    """Falha ao ler ou gravar no banco; o estado anterior é mantido."""

    def __init__(self, message="Falha ao salvar no banco. Tente novamente."):
        super().__init__(message, 503)


async def app_error_handler(_request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("Erro de aplicação: %s", exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppError, app_error_handler)
