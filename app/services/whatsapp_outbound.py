from __future__ import annotations

import logging

from app.core.config import WHATSAPP_CLOUD_ENABLED, WHATSAPP_COUNTRY_CODE
from app.integrations.whatsapp import send_text
from app.services.whatsapp_templates import only_digits

logger = logging.getLogger(__name__)


def _to_international(phone: str) -> str:
    digits = only_digits(phone)
    if digits and WHATSAPP_COUNTRY_CODE and not digits.startswith(WHATSAPP_COUNTRY_CODE):
        digits = f"{WHATSAPP_COUNTRY_CODE}{digits}"
    return digits


async def send_customer_notification(phone: str, text: str, order_id: int | None = None) -> bool:
    """Envio via Cloud API, sem bloquear quem chamou.

    Roda como tarefa de fundo; qualquer falha só gera log.
    """
    if not WHATSAPP_CLOUD_ENABLED:
        logger.debug("WhatsApp Cloud API desativada; aviso não enviado", extra={"order_id": order_id})
        return False

    to = _to_international(phone)
    if not to:
        return False
    try:
        await send_text(to, text)
    except Exception:
        logger.warning("Falha ao enviar aviso ao cliente", exc_info=True, extra={"order_id": order_id})
        return False
    logger.info("Aviso enviado ao cliente %s", to, extra={"order_id": order_id})
    return True
